"""Patient record models: profile fields editable from the doctor dashboard."""

from typing import Optional

from pydantic import BaseModel, EmailStr

# Profile fields whose edits are written to the audit trail as "field: value".
TRACKED_PATIENT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "date_of_birth",
    "gender",
    "address",
    "diabetes_type",
    "diabetes_duration",
    "doctor_id",
    "risk_classification",
)


class PatientCreate(BaseModel):
    """Request body for registering a patient."""
    first_name: str
    last_name: str
    user_id: Optional[str] = None  # identity-provider profile the patient signs in with
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None  # YYYY-MM-DD
    gender: Optional[str] = None
    address: Optional[str] = None
    diabetes_type: Optional[str] = None
    diabetes_duration: Optional[str] = None
    doctor_id: Optional[str] = None
    medications: list[str] = []


class PatientUpdate(BaseModel):
    """Partial profile update; unset fields are left untouched."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    diabetes_type: Optional[str] = None
    diabetes_duration: Optional[str] = None
    doctor_id: Optional[str] = None
    risk_classification: Optional[str] = None


class MedicationUpdate(BaseModel):
    """Replace one medication entry, e.g. "Metformin 500mg" -> "Metformin 750mg"."""
    old_medication: Optional[str] = None
    new_medication: str
