"""Risk-model configuration stored as a single ``meta`` document."""

from typing import Optional

import diatrack.database as _db
from diatrack.models.audit import AuditOutcome
from diatrack.models.ml_settings import MLSettings
from diatrack.services.audit_service import Actor, AuditContext, failure_description, log_ml_settings_change
from diatrack.utils import utcnow

_ML_SETTINGS_ID = "ml_settings"


async def get_ml_settings() -> MLSettings:
    doc = await _db.db.meta.find_one({"_id": _ML_SETTINGS_ID})
    if not doc:
        return MLSettings()
    return MLSettings(**{k: v for k, v in doc.items() if k in MLSettings.model_fields})


async def update_ml_settings(
    body: MLSettings,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
) -> MLSettings:
    old = await get_ml_settings()
    try:
        await _db.db.meta.update_one(
            {"_id": _ML_SETTINGS_ID},
            {"$set": {**body.model_dump(), "updated_at": utcnow(), "updated_by": actor.actor_id}},
            upsert=True,
        )
    except Exception as exc:
        await log_ml_settings_change(
            *actor.args(),
            "update",
            old.model_dump(),
            failure_description("Failed to update settings", exc),
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    await log_ml_settings_change(
        *actor.args(),
        "update",
        old.model_dump(),
        body.model_dump(),
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return body
