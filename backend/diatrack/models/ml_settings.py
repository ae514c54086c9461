from pydantic import BaseModel, Field


class MLSettings(BaseModel):
    """Risk classification model configuration (admin-editable)."""
    classifier_version: str = "v1"
    risk_threshold_high: float = Field(0.7, ge=0.0, le=1.0)
    risk_threshold_moderate: float = Field(0.4, ge=0.0, le=1.0)
    auto_classify: bool = False
