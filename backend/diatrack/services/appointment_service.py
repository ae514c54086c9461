"""
backend/diatrack/services/appointment_service.py

Purpose:
    Appointment lifecycle (schedule, cancel, reschedule). Cancel and
    reschedule capture the appointment as it was before the change so the
    audit record carries both states.

Dependencies:
    - diatrack.database
    - diatrack.services.audit_service
"""

import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status

import diatrack.database as _db
from diatrack.models.appointment import AppointmentCreate, AppointmentReschedule, AppointmentStatus
from diatrack.models.audit import AuditOutcome
from diatrack.services.audit_service import Actor, AuditContext, failure_description, log_appointment_event
from diatrack.utils import ensure_utc, utcnow

logger = logging.getLogger("diatrack.appointments")


async def _get_appointment(appointment_id: str) -> dict:
    appointment = await _db.db.appointments.find_one({"_id": ObjectId(appointment_id)})
    if not appointment:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Appointment not found.")
    return appointment


async def schedule_appointment(
    body: AppointmentCreate,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Appointment Scheduler",
) -> dict:
    now = utcnow()
    doc = {
        "patient_id": body.patient_id,
        "doctor_id": body.doctor_id,
        "appointment_at": ensure_utc(body.appointment_at),
        "reason": body.reason,
        "status": AppointmentStatus.scheduled.value,
        "created_by": actor.actor_id,
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await _db.db.appointments.insert_one(doc)
    except Exception as exc:
        await log_appointment_event(
            *actor.args(),
            body.patient_id,
            "schedule",
            failure_description("Failed to schedule", exc),
            source_page,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    doc["_id"] = result.inserted_id
    await log_appointment_event(
        *actor.args(),
        body.patient_id,
        "schedule",
        doc,
        source_page,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return doc


async def _transition(
    appointment_id: str,
    changes: dict,
    action: str,
    actor: Actor,
    context: Optional[AuditContext],
    source_page: str,
) -> dict:
    current = await _get_appointment(appointment_id)
    if current.get("status") == AppointmentStatus.cancelled.value:
        raise HTTPException(status.HTTP_409_CONFLICT, "Appointment is already cancelled.")

    changes = {**changes, "updated_at": utcnow(), "updated_by": actor.actor_id}
    try:
        await _db.db.appointments.update_one({"_id": current["_id"]}, {"$set": changes})
    except Exception as exc:
        await log_appointment_event(
            *actor.args(),
            current["patient_id"],
            action,
            failure_description(f"Failed to {action}", exc),
            source_page,
            old_value=current,
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    updated = {**current, **changes}
    await log_appointment_event(
        *actor.args(),
        current["patient_id"],
        action,
        updated,
        source_page,
        old_value=current,
        outcome=AuditOutcome.success.value,
        context=context,
    )
    return updated


async def cancel_appointment(
    appointment_id: str,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Appointment Manager",
) -> dict:
    changes = {"status": AppointmentStatus.cancelled.value, "cancelled_at": utcnow()}
    return await _transition(appointment_id, changes, "cancel", actor, context, source_page)


async def reschedule_appointment(
    appointment_id: str,
    body: AppointmentReschedule,
    actor: Actor,
    *,
    context: Optional[AuditContext] = None,
    source_page: str = "Appointment Manager",
) -> dict:
    changes = {"appointment_at": ensure_utc(body.appointment_at)}
    return await _transition(appointment_id, changes, "reschedule", actor, context, source_page)


async def list_appointments(patient_id: Optional[str] = None, limit: int = 100) -> list[dict]:
    query = {"patient_id": patient_id} if patient_id else {}
    return await _db.db.appointments.find(query).sort("appointment_at", 1).to_list(length=limit)
