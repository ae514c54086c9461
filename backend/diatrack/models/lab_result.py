from typing import Any, Optional

from pydantic import BaseModel


class LabResultCreate(BaseModel):
    """Lab panel entered by staff (HbA1c, lipids, creatinine, ...)."""
    patient_id: str
    test_type: str
    test_date: str  # YYYY-MM-DD
    results: dict[str, Any]
    notes: Optional[str] = None
    file_url: Optional[str] = None


class LabResultUpdate(BaseModel):
    test_type: Optional[str] = None
    test_date: Optional[str] = None
    results: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
