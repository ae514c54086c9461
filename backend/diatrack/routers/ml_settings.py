from fastapi import APIRouter, Depends, Request

from diatrack.models.ml_settings import MLSettings
from diatrack.services import ml_settings_service
from diatrack.services.audit_service import audit_context_from_request
from diatrack.services.auth_service import actor_from_user, get_admin_user

router = APIRouter(prefix="/api/admin/ml-settings", tags=["admin"])


@router.get("", response_model=MLSettings)
async def get_ml_settings(admin=Depends(get_admin_user)):
    return await ml_settings_service.get_ml_settings()


@router.put("", response_model=MLSettings)
async def update_ml_settings(body: MLSettings, request: Request, admin=Depends(get_admin_user)):
    return await ml_settings_service.update_ml_settings(
        body, actor_from_user(admin), context=audit_context_from_request(request),
    )
