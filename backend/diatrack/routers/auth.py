import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from diatrack.database import get_db
from diatrack.models.audit import AuditOutcome
from diatrack.services.audit_service import (
    SYSTEM_ACTOR,
    audit_context_from_request,
    log_auth_event,
    log_credential_event,
)
from diatrack.services.auth_service import (
    actor_from_user,
    clear_auth_cookie,
    get_current_user,
    login_subject,
    resolve_user,
    set_auth_cookie,
)
from diatrack.utils import to_api

logger = logging.getLogger("diatrack.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


class SessionLogin(BaseModel):
    """Access token issued by the identity provider after sign-in."""
    access_token: str


@router.post("/login")
async def login(body: SessionLogin, request: Request, response: Response, db=Depends(get_db)):
    """Open a session from an identity-provider token."""
    context = audit_context_from_request(request)
    try:
        user = await resolve_user(body.access_token, db)
    except HTTPException as exc:
        subject_id, email = await login_subject(body.access_token, db)
        attempted = f" for email: {email}" if email else ""
        await log_credential_event(
            *SYSTEM_ACTOR.args(),
            subject_id,
            "login",
            f"Failed login attempt{attempted}: {exc.detail}",
            "Login Page",
            outcome=AuditOutcome.failure.value,
            context=context,
        )
        raise

    set_auth_cookie(response, body.access_token)
    actor = actor_from_user(user)
    await log_auth_event(
        *actor.args(),
        "login",
        outcome=AuditOutcome.success.value,
        context=context,
    )
    logger.info("User logged in: %s (%s)", actor.actor_id, actor.actor_type)
    return {"message": "Login successful.", "role": actor.actor_type}


@router.post("/logout")
async def logout(request: Request, response: Response, user=Depends(get_current_user)):
    actor = actor_from_user(user)
    await log_auth_event(
        *actor.args(),
        "logout",
        "Dashboard",
        outcome=AuditOutcome.success.value,
        context=audit_context_from_request(request),
    )
    clear_auth_cookie(response)
    return {"message": "Logged out."}


@router.get("/me")
async def get_me(user=Depends(get_current_user)):
    profile = to_api(user)
    profile.pop("password_hash", None)
    return profile
