"""
backend/diatrack/__main__.py

Purpose:
    Serve the API with uvicorn: ``python -m diatrack`` or the ``diatrack``
    console script. Bind address comes from HOST / PORT settings.

Dependencies:
    - uvicorn
    - diatrack.config
"""

import uvicorn

from diatrack.config import settings


def main() -> None:
    uvicorn.run("diatrack.main:app", host=settings.HOST, port=settings.PORT, proxy_headers=True)


if __name__ == "__main__":
    main()
