"""Lab result upload, correction and removal, each described to the audit trail."""

import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status

import diatrack.database as _db
from diatrack.models.audit import AuditOutcome
from diatrack.models.lab_result import LabResultCreate, LabResultUpdate
from diatrack.services.audit_service import Actor, AuditContext, failure_description, log_lab_result_event
from diatrack.utils import utcnow

logger = logging.getLogger("diatrack.lab_results")

SOURCE_PAGE = "Lab Results Portal"


async def get_lab_result(lab_result_id: str) -> dict:
    doc = await _db.db.lab_results.find_one({"_id": ObjectId(lab_result_id)})
    if not doc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Lab result not found.")
    return doc


async def upload_lab_result(
    body: LabResultCreate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
) -> dict:
    now = utcnow()
    doc = {**body.model_dump(), "uploaded_by": actor.actor_id, "created_at": now, "updated_at": now}
    try:
        result = await _db.db.lab_results.insert_one(doc)
    except Exception as exc:
        await log_lab_result_event(
            *actor.args(),
            body.patient_id,
            "upload",
            failure_description("Failed to upload", exc),
            SOURCE_PAGE,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    doc["_id"] = result.inserted_id
    await log_lab_result_event(
        *actor.args(),
        body.patient_id,
        "upload",
        doc,
        SOURCE_PAGE,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return doc


async def update_lab_result(
    lab_result_id: str,
    body: LabResultUpdate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
) -> dict:
    current = await get_lab_result(lab_result_id)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return current

    changes.update({"updated_at": utcnow(), "updated_by": actor.actor_id})
    try:
        await _db.db.lab_results.update_one({"_id": current["_id"]}, {"$set": changes})
    except Exception as exc:
        await log_lab_result_event(
            *actor.args(),
            current["patient_id"],
            "update",
            failure_description("Failed to update", exc),
            SOURCE_PAGE,
            old_value=current,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    updated = {**current, **changes}
    await log_lab_result_event(
        *actor.args(),
        current["patient_id"],
        "update",
        updated,
        SOURCE_PAGE,
        old_value=current,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return updated


async def delete_lab_result(
    lab_result_id: str,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
) -> None:
    current = await get_lab_result(lab_result_id)
    try:
        await _db.db.lab_results.delete_one({"_id": current["_id"]})
    except Exception as exc:
        await log_lab_result_event(
            *actor.args(),
            current["patient_id"],
            "delete",
            failure_description("Failed to delete", exc),
            SOURCE_PAGE,
            old_value=current,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    await log_lab_result_event(
        *actor.args(),
        current["patient_id"],
        "delete",
        "Lab result deleted",
        SOURCE_PAGE,
        old_value=current,
        outcome=AuditOutcome.success.value,
        context=context,
    )
