from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    cancelled = "cancelled"
    completed = "completed"


class AppointmentCreate(BaseModel):
    patient_id: str
    doctor_id: str
    appointment_at: datetime
    reason: Optional[str] = None


class AppointmentReschedule(BaseModel):
    appointment_at: datetime
