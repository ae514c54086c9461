"""
backend/diatrack/config.py

Purpose:
    Central settings loading for the DiaTrack backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "diatrack"
    # Shared secret of the external identity provider (HS256 access tokens)
    JWT_SECRET: str = "change-me"
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared once old tokens expired
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    COOKIE_SECURE: bool = False  # Set True in production (HTTPS)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Audit trail
    AUDIT_ENABLED: bool = True
    AUDIT_DEFAULT_USER_AGENT: str = "diatrack-backend"
    AUDIT_TRUNCATE_IP: bool = False  # GDPR-style "192.168.1.xxx"
    AUDIT_LIST_MAX_LIMIT: int = 500
    AUDIT_EXPORT_MAX_ROWS: int = 50000

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
