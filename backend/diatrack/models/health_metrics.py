from typing import Optional

from pydantic import BaseModel


class HealthMetricsCreate(BaseModel):
    """One self-reported or checkup reading. At least one value must be present."""
    blood_glucose: Optional[float] = None
    bp_systolic: Optional[int] = None
    bp_diastolic: Optional[int] = None
    weight: Optional[float] = None
    notes: Optional[str] = None

    def readings(self) -> dict:
        return {k: v for k, v in self.model_dump().items() if v is not None}
