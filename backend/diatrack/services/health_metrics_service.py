"""Health metrics submission (glucose, blood pressure, weight) with audit trail.

Readings are only accepted for an existing patient record.
"""

import logging
from typing import Optional

from fastapi import HTTPException, status

import diatrack.database as _db
from diatrack.models.audit import AuditOutcome
from diatrack.models.health_metrics import HealthMetricsCreate
from diatrack.services.audit_service import Actor, AuditContext, failure_description, log_metrics_submission
from diatrack.services.patient_service import get_patient
from diatrack.utils import utcnow

logger = logging.getLogger("diatrack.health_metrics")


async def submit_metrics(
    patient_id: str,
    body: HealthMetricsCreate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Checkup Notes",
) -> dict:
    readings = body.readings()
    if not any(k != "notes" for k in readings):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "At least one reading is required.")
    await get_patient(patient_id)

    doc = {
        "patient_id": patient_id,
        **readings,
        "submitted_by": actor.actor_id,
        "recorded_at": utcnow(),
    }
    try:
        result = await _db.db.health_metrics.insert_one(doc)
    except Exception as exc:
        await log_metrics_submission(
            *actor.args(),
            patient_id,
            "create",
            failure_description("Failed to submit", exc),
            source_page,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    doc["_id"] = result.inserted_id
    await log_metrics_submission(
        *actor.args(),
        patient_id,
        "create",
        readings,
        source_page,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return doc


async def list_metrics(patient_id: str, limit: int = 30) -> list[dict]:
    return (
        await _db.db.health_metrics.find({"patient_id": patient_id})
        .sort("recorded_at", -1)
        .to_list(length=limit)
    )
