from fastapi import APIRouter, Depends, Request, status

from diatrack.models.lab_result import LabResultCreate, LabResultUpdate
from diatrack.services import lab_result_service
from diatrack.services.audit_service import audit_context_from_request
from diatrack.services.auth_service import actor_from_user, get_staff_user
from diatrack.utils import to_api

router = APIRouter(prefix="/api/lab-results", tags=["lab_results"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_lab_result(body: LabResultCreate, request: Request, user=Depends(get_staff_user)):
    doc = await lab_result_service.upload_lab_result(
        body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)


@router.patch("/{lab_result_id}")
async def update_lab_result(
    lab_result_id: str, body: LabResultUpdate, request: Request, user=Depends(get_staff_user),
):
    doc = await lab_result_service.update_lab_result(
        lab_result_id, body, actor_from_user(user), context=audit_context_from_request(request),
    )
    return to_api(doc)


@router.delete("/{lab_result_id}")
async def delete_lab_result(lab_result_id: str, request: Request, user=Depends(get_staff_user)):
    await lab_result_service.delete_lab_result(
        lab_result_id, actor_from_user(user), context=audit_context_from_request(request),
    )
    return {"message": "Lab result deleted."}
