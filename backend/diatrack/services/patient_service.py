"""
backend/diatrack/services/patient_service.py

Purpose:
    Patient registration, profile edits and medication changes. Each write
    completes first and is then described to the audit trail; failed writes
    are audited as well before the error propagates.

Dependencies:
    - diatrack.database
    - diatrack.services.audit_service
"""

import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status

import diatrack.database as _db
from diatrack.models.audit import AuditModule, AuditOutcome
from diatrack.models.patient import (
    TRACKED_PATIENT_FIELDS,
    MedicationUpdate,
    PatientCreate,
    PatientUpdate,
)
from diatrack.services.audit_service import (
    Actor,
    AuditContext,
    failure_description,
    log_medication_change,
    log_patient_data_change,
    log_system_action,
)
from diatrack.utils import utcnow

logger = logging.getLogger("diatrack.patients")


def _summarize(values: dict) -> Optional[str]:
    """Render changed fields as ``phone: 555-0123; diabetes_type: Type 2``."""
    if not values:
        return None
    return "; ".join(f"{field}: {value}" for field, value in values.items())


async def get_patient(patient_id: str) -> dict:
    patient = await _db.db.patients.find_one({"_id": ObjectId(patient_id)})
    if not patient:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Patient not found.")
    return patient


async def get_patient_for_user(user_id: str) -> dict:
    """Patient record linked to a signed-in patient profile."""
    patient = await _db.db.patients.find_one({"user_id": user_id})
    if not patient:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No patient record is linked to this account.")
    return patient


async def create_patient(
    body: PatientCreate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Create Patient",
) -> dict:
    now = utcnow()
    doc = {
        **body.model_dump(),
        "created_by": actor.actor_id,
        "created_at": now,
        "updated_at": now,
    }
    full_name = f"{body.first_name} {body.last_name}"

    try:
        result = await _db.db.patients.insert_one(doc)
    except Exception as exc:
        await log_system_action(
            *actor.args(),
            AuditModule.user_management.value,
            "create",
            failure_description(f"Failed to create patient {full_name}", exc),
            source_page,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    doc["_id"] = result.inserted_id
    patient_id = str(result.inserted_id)
    await log_patient_data_change(
        *actor.args(),
        patient_id,
        AuditModule.patients.value,
        "create",
        None,
        f"Created patient account for {full_name}",
        source_page,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    logger.info("Patient created: %s by %s", patient_id, actor.actor_id)
    return doc


async def update_patient(
    patient_id: str,
    body: PatientUpdate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Patient Overview",
) -> dict:
    """Apply a partial profile edit. Only fields that actually change are written and audited."""
    current = await get_patient(patient_id)
    requested = body.model_dump(exclude_unset=True)
    changes = {
        field: value
        for field, value in requested.items()
        if field in TRACKED_PATIENT_FIELDS and current.get(field) != value
    }
    if not changes:
        return current

    before = {field: current.get(field) for field in changes}
    try:
        await _db.db.patients.update_one(
            {"_id": current["_id"]},
            {"$set": {**changes, "updated_at": utcnow()}},
        )
    except Exception as exc:
        await log_patient_data_change(
            *actor.args(),
            patient_id,
            AuditModule.profile.value,
            "edit",
            _summarize(before),
            failure_description("Failed to update profile", exc),
            source_page,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    await log_patient_data_change(
        *actor.args(),
        patient_id,
        AuditModule.profile.value,
        "edit",
        _summarize(before),
        _summarize(changes),
        source_page,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return {**current, **changes}


async def update_medication(
    patient_id: str,
    body: MedicationUpdate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
) -> dict:
    """Replace ``old_medication`` in the care plan, or add the new one when it is absent."""
    current = await get_patient(patient_id)
    medications = list(current.get("medications") or [])

    if body.old_medication and body.old_medication in medications:
        medications[medications.index(body.old_medication)] = body.new_medication
        action = "edit"
    else:
        medications.append(body.new_medication)
        action = "create"

    try:
        await _db.db.patients.update_one(
            {"_id": current["_id"]},
            {"$set": {"medications": medications, "updated_at": utcnow()}},
        )
    except Exception as exc:
        await log_medication_change(
            *actor.args(),
            patient_id,
            action,
            body.old_medication,
            failure_description(f"Failed to save {body.new_medication}", exc),
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    await log_medication_change(
        *actor.args(),
        patient_id,
        action,
        body.old_medication if action == "edit" else None,
        body.new_medication,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return {**current, "medications": medications}
