from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from diatrack.models.appointment import AppointmentCreate, AppointmentReschedule
from diatrack.services import appointment_service
from diatrack.services.audit_service import audit_context_from_request
from diatrack.services.auth_service import actor_from_user, get_staff_user
from diatrack.utils import to_api

router = APIRouter(prefix="/api/appointments", tags=["appointments"])


@router.get("")
async def list_appointments(
    patient_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    user=Depends(get_staff_user),
):
    return [to_api(a) for a in await appointment_service.list_appointments(patient_id, limit)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def schedule_appointment(body: AppointmentCreate, request: Request, user=Depends(get_staff_user)):
    doc = await appointment_service.schedule_appointment(
        body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)


@router.post("/{appointment_id}/cancel")
async def cancel_appointment(appointment_id: str, request: Request, user=Depends(get_staff_user)):
    doc = await appointment_service.cancel_appointment(
        appointment_id, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)


@router.post("/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: str, body: AppointmentReschedule, request: Request, user=Depends(get_staff_user),
):
    doc = await appointment_service.reschedule_appointment(
        appointment_id, body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)
