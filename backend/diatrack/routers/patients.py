import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from diatrack.models.health_metrics import HealthMetricsCreate
from diatrack.models.patient import MedicationUpdate, PatientCreate, PatientUpdate
from diatrack.services import health_metrics_service, patient_service
from diatrack.services.audit_service import audit_context_from_request
from diatrack.services.auth_service import STAFF_ROLES, actor_from_user, get_current_user, get_staff_user
from diatrack.utils import to_api

logger = logging.getLogger("diatrack.patients")
router = APIRouter(prefix="/api/patients", tags=["patients"])


async def _ensure_patient_access(user: dict, patient_id: str) -> None:
    """Staff see every patient; a patient only the record linked to their profile."""
    if user.get("role") in STAFF_ROLES:
        return
    patient = await patient_service.get_patient(patient_id)
    if patient.get("user_id") != str(user["_id"]):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Access denied.")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(body: PatientCreate, request: Request, user=Depends(get_staff_user)):
    patient = await patient_service.create_patient(
        body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(patient)


@router.get("/me")
async def get_my_patient_record(user=Depends(get_current_user)):
    return to_api(await patient_service.get_patient_for_user(str(user["_id"])))


@router.get("/{patient_id}")
async def get_patient(patient_id: str, user=Depends(get_current_user)):
    await _ensure_patient_access(user, patient_id)
    return to_api(await patient_service.get_patient(patient_id))


@router.patch("/{patient_id}")
async def update_patient(
    patient_id: str, body: PatientUpdate, request: Request, user=Depends(get_staff_user),
):
    patient = await patient_service.update_patient(
        patient_id, body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(patient)


@router.put("/{patient_id}/medications")
async def update_medication(
    patient_id: str, body: MedicationUpdate, request: Request, user=Depends(get_staff_user),
):
    patient = await patient_service.update_medication(
        patient_id, body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return {"medications": patient.get("medications", [])}


@router.post("/{patient_id}/metrics", status_code=status.HTTP_201_CREATED)
async def submit_metrics(
    patient_id: str, body: HealthMetricsCreate, request: Request, user=Depends(get_current_user),
):
    await _ensure_patient_access(user, patient_id)
    doc = await health_metrics_service.submit_metrics(
        patient_id, body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)


@router.get("/{patient_id}/metrics")
async def list_metrics(
    patient_id: str, limit: int = Query(30, ge=1, le=365), user=Depends(get_current_user),
):
    await _ensure_patient_access(user, patient_id)
    return [to_api(doc) for doc in await health_metrics_service.list_metrics(patient_id, limit)]
