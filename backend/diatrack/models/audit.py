"""Audit trail models: the one canonical record every domain event maps into."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class ActorType(str, Enum):
    admin = "admin"
    doctor = "doctor"
    secretary = "secretary"
    patient = "patient"
    system = "system"


class AuditModule(str, Enum):
    credentials = "credentials"
    medications = "medications"
    metrics = "metrics"
    appointments = "appointments"
    lab_results = "lab_results"
    ml_settings = "ml_settings"
    user_management = "user_management"
    profile = "profile"
    patients = "patients"


class AuditOutcome(str, Enum):
    success = "success"
    failure = "failure"


class AuditRecord(BaseModel):
    """Immutable audit log entry.

    Insert-only. ``recorded_at`` is not part of the record: the store stamps it
    with its own clock when the row is written.
    """

    model_config = {"frozen": True, "use_enum_values": True}

    actor_type: ActorType
    actor_id: str
    actor_name: str
    subject_id: Optional[str] = None  # affected patient/user, not validated here
    module: Optional[str] = None  # AuditModule value, open-ended for new areas
    action_type: Optional[str] = None  # login, edit, schedule, upload, ...
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    source_page: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    outcome: Optional[AuditOutcome] = None

    @field_validator("actor_id", "actor_name", mode="before")
    @classmethod
    def actor_present(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("actor identity is required")
        return str(v)

    @field_validator(
        "subject_id", "module", "action_type", "old_value", "new_value",
        "source_page", "ip_address", "user_agent", "session_id",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, Enum):
            return v.value
        return str(v)

    def to_document(self) -> dict:
        return self.model_dump()


class AuditLogEntry(BaseModel):
    """Audit record as read back by the admin viewer."""

    id: str
    recorded_at: Optional[datetime] = None
    actor_type: str
    actor_id: str
    actor_name: str
    subject_id: Optional[str] = None
    module: Optional[str] = None
    action_type: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    source_page: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    outcome: Optional[str] = None


class AuditLogPage(BaseModel):
    total: int
    offset: int
    limit: int
    items: list[AuditLogEntry]
