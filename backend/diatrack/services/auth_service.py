"""
backend/diatrack/services/auth_service.py

Purpose:
    Request authentication for the API. Sign-in itself happens at the external
    identity provider; this module only verifies the provider's HS256 access
    tokens, resolves the matching staff/patient profile and turns it into an
    audit Actor.

Dependencies:
    - PyJWT
    - diatrack.database
"""

import logging
from typing import Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, Response, status
from jwt.exceptions import InvalidTokenError as JWTError

from diatrack.config import settings
from diatrack.database import get_db
from diatrack.services.audit_service import Actor

logger = logging.getLogger("diatrack.auth")

ALGORITHM = "HS256"
STAFF_ROLES = {"admin", "doctor", "secretary"}
KNOWN_ROLES = STAFF_ROLES | {"patient"}


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    This allows zero-downtime rotation of JWT_SECRET:
    1. Set JWT_SECRET to the new value and JWT_SECRET_OLD to the previous one.
    2. Once every token signed with the old secret has expired, clear JWT_SECRET_OLD.
    """
    options = {"verify_aud": False}
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], options=options)
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM], options=options)
        raise


def extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the session cookie set by /api/auth/login."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("access_token")


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie("access_token", path="/")


def _profile_filter(subject: str) -> dict:
    try:
        return {"_id": ObjectId(subject)}
    except (InvalidId, TypeError):
        return {"_id": subject}


async def resolve_user(token: str, db) -> dict:
    """Verify *token* and load the profile it belongs to. Raises 401 on any mismatch."""
    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    user = await db.users.find_one(_profile_filter(subject))
    if not user or user.get("is_disabled"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found.",
        )
    if (user.get("role") or "patient") not in KNOWN_ROLES:
        # Roles outside ActorType cannot be attributed in the audit trail.
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Role not permitted.",
        )
    return user


async def login_subject(token: str, db) -> tuple[Optional[str], Optional[str]]:
    """Best-effort (subject, email) behind a rejected token, for the failed-login record."""
    try:
        payload = decode_jwt(token)
    except JWTError:
        return None, None

    subject = payload.get("sub")
    if not subject:
        return None, None

    profile = await db.users.find_one(_profile_filter(str(subject)))
    email = (profile or {}).get("email") or payload.get("email")
    return str(subject), email


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: authenticated user from bearer token or cookie."""
    token = extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
        )
    return await resolve_user(token, db)


async def get_staff_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: admin, doctor or secretary."""
    user = await get_current_user(request, db)
    if user.get("role") not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff only.",
        )
    return user


async def get_admin_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    user = await get_current_user(request, db)
    if user.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins only.",
        )
    return user


def display_name(user: dict) -> str:
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return name or user.get("email") or str(user["_id"])


def actor_from_user(user: dict) -> Actor:
    """Audit identity of an authenticated profile (patients log as ``patient``)."""
    role = user.get("role") or "patient"
    return Actor(actor_type=role, actor_id=str(user["_id"]), actor_name=display_name(user))
