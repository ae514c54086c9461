"""
backend/diatrack/services/audit_service.py

Purpose:
    Immutable audit logging for clinical and administrative actions. Every
    call site (login, patient edits, medications, metrics, appointments, lab
    results, ML settings) goes through one builder that maps its parameters
    into the canonical AuditRecord and appends it to ``audit_logs``.

    All audit entries are insert-only. This module intentionally exposes NO
    read, update or delete operations on the audit_logs collection, and it
    never raises: a failed audit write must not change the outcome of the
    operation it describes.

Dependencies:
    - bson.ObjectId
    - fastapi.Request (only to build an explicit AuditContext)
    - diatrack.database
    - diatrack.models.audit
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from bson import ObjectId
from fastapi import Request

import diatrack.database as _db
from diatrack.config import settings
from diatrack.models.audit import AuditModule, AuditOutcome, AuditRecord

logger = logging.getLogger("diatrack.audit")


@dataclass(frozen=True)
class ModuleRule:
    required: frozenset[str]  # fields needed beyond the actor triple
    source_page: Optional[str] = None  # used when neither caller nor context names one


MODULE_RULES: dict[str, ModuleRule] = {
    AuditModule.credentials.value: ModuleRule(frozenset({"action_type"}), "Credential Manager"),
    AuditModule.medications.value: ModuleRule(frozenset({"subject_id", "action_type"}), "Care Plan Tab"),
    AuditModule.metrics.value: ModuleRule(frozenset({"subject_id", "action_type", "new_value"}), "Checkup Notes"),
    AuditModule.appointments.value: ModuleRule(frozenset({"subject_id", "action_type"}), "Appointment Manager"),
    AuditModule.lab_results.value: ModuleRule(frozenset({"subject_id", "action_type"}), "Lab Results Portal"),
    AuditModule.ml_settings.value: ModuleRule(frozenset({"action_type"}), "ML Model Config"),
    AuditModule.user_management.value: ModuleRule(frozenset({"action_type"})),
    AuditModule.profile.value: ModuleRule(frozenset({"subject_id", "action_type"})),
    AuditModule.patients.value: ModuleRule(frozenset({"subject_id", "action_type"})),
}

_NO_RULE = ModuleRule(frozenset())


@dataclass(frozen=True)
class Actor:
    """Who performed the action, as shown in the audit trail."""

    actor_type: str
    actor_id: str
    actor_name: str

    def args(self) -> tuple[str, str, str]:
        return (self.actor_type, self.actor_id, self.actor_name)


SYSTEM_ACTOR = Actor(actor_type="system", actor_id="system", actor_name="System")


@dataclass(frozen=True)
class AuditContext:
    """Caller environment attached to a record (never looked up implicitly)."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    source_page: Optional[str] = None


def _truncate_ip(ip: str) -> str:
    """Anonymize an IP address by replacing the last segment.

    IPv4: 192.168.1.42  -> 192.168.1.xxx
    IPv6: 2001:db8::1   -> 2001:db8::xxx
    """
    if not ip:
        return ""

    if "." in ip:
        parts = ip.split(".")
        if len(parts) == 4:
            parts[-1] = "xxx"
            return ".".join(parts)
        return ip

    if ":" in ip:
        head, sep, _ = ip.rpartition(":")
        if sep:
            return f"{head}:xxx"

    return ip


def _get_client_ip(request: Request) -> str:
    """Extract client IP, preferring the first X-Forwarded-For hop (behind nginx)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return ""


def audit_context_from_request(
    request: Optional[Request],
    session_id: Optional[str] = None,
    source_page: Optional[str] = None,
) -> AuditContext:
    """Build the environment part of an audit record from an HTTP request.

    The dashboard labels its screens through ``X-Session-ID`` and
    ``X-Source-Page``; explicit arguments take precedence over both headers.
    """
    if request is None:
        return AuditContext(session_id=session_id, source_page=source_page)

    ip = _get_client_ip(request)
    if settings.AUDIT_TRUNCATE_IP:
        ip = _truncate_ip(ip)

    return AuditContext(
        ip_address=ip or None,
        user_agent=request.headers.get("user-agent") or None,
        session_id=session_id or request.headers.get("x-session-id") or None,
        source_page=source_page or request.headers.get("x-source-page") or None,
    )


def failure_description(action: str, exc: BaseException) -> str:
    """Describe a failed write by exception type only.

    Driver messages can echo stored values (a duplicate key error quotes the
    colliding email), which must not end up in the searchable trail.
    """
    return f"{action}: {type(exc).__name__}"


def serialize_value(value: Any) -> Optional[str]:
    """Render a before/after value for storage.

    Strings are stored as-is; structured payloads become compact JSON so that
    ``json.loads`` gives back the original object. ObjectIds and datetimes are
    stringified.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, separators=(",", ":"), ensure_ascii=False)


def build_audit_record(
    *,
    actor_type: str,
    actor_id: str,
    actor_name: str,
    subject_id: Optional[str] = None,
    module: Optional[str] = None,
    action_type: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    source_page: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    session_id: Optional[str] = None,
    outcome: Optional[AuditOutcome | str] = None,
    context: Optional[AuditContext] = None,
) -> AuditRecord:
    """Normalize one domain action into the canonical record.

    Explicit arguments win over the context. ``user_agent`` finally falls back
    to the configured service identity and ``source_page`` to the module's
    default page. Raises ValueError (or pydantic's ValidationError) for
    missing actor fields or module-required fields.
    """
    ctx = context or AuditContext()
    rule = MODULE_RULES.get(module or "", _NO_RULE)
    record = AuditRecord(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=subject_id,
        module=module,
        action_type=action_type,
        old_value=serialize_value(old_value),
        new_value=serialize_value(new_value),
        source_page=source_page or ctx.source_page or rule.source_page,
        ip_address=ip_address or ctx.ip_address,
        user_agent=user_agent or ctx.user_agent or settings.AUDIT_DEFAULT_USER_AGENT,
        session_id=session_id or ctx.session_id,
        outcome=outcome,
    )

    missing = sorted(name for name in rule.required if getattr(record, name) is None)
    if missing:
        raise ValueError(f"audit record for module {record.module!r} is missing {', '.join(missing)}")
    return record


async def _insert(record: AuditRecord) -> None:
    # Upsert on a fresh _id is a plain insert, but lets the server clock stamp recorded_at.
    await _db.db.audit_logs.update_one(
        {"_id": ObjectId()},
        {"$setOnInsert": record.to_document(), "$currentDate": {"recorded_at": True}},
        upsert=True,
    )


async def record_event(**fields: Any) -> None:
    """Write one immutable audit record. Never raises.

    Accepts the keyword arguments of :func:`build_audit_record`. Transport
    failures, store rejections and malformed input are all logged once and
    swallowed.
    """
    if not settings.AUDIT_ENABLED:
        logger.debug("Audit disabled, dropping event: module=%s action=%s", fields.get("module"), fields.get("action_type"))
        return

    try:
        record = build_audit_record(**fields)
        await _insert(record)
    except Exception:
        logger.exception(
            "Failed to write audit log: module=%s action=%s actor=%s",
            fields.get("module"),
            fields.get("action_type"),
            fields.get("actor_id"),
        )


# ---------------------------------------------------------------------------
# Named wrappers: one per recognizable domain category
# ---------------------------------------------------------------------------


async def log_auth_event(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    action_type: str,
    source_page: Optional[str] = "Login Page",
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Login / logout of an identified user. Sessions open on the Login Page, not the Credential Manager."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        module=AuditModule.credentials.value,
        action_type=action_type,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_patient_data_change(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    patient_id: str,
    module: str,
    action_type: str,
    old_value: Any = None,
    new_value: Any = None,
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=patient_id,
        module=module,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_system_action(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    module: str,
    action_type: str,
    description: Optional[str],
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Admin/system action described in free text (stored as new_value)."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        module=module,
        action_type=action_type,
        new_value=description,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_medication_change(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    patient_id: str,
    action_type: str,
    old_medication: Any,
    new_medication: Any,
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=patient_id,
        module=AuditModule.medications.value,
        action_type=action_type,
        old_value=old_medication,
        new_value=new_medication,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_metrics_submission(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    patient_id: str,
    action_type: str,
    metrics_data: Any,
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Health metrics; structured payloads are stored as compact JSON."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=patient_id,
        module=AuditModule.metrics.value,
        action_type=action_type,
        new_value=metrics_data,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_appointment_event(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    patient_id: str,
    action_type: str,
    appointment_details: Any,
    source_page: Optional[str] = None,
    *,
    old_value: Any = None,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Schedule / cancel / reschedule. Pass ``old_value=`` for the prior appointment."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=patient_id,
        module=AuditModule.appointments.value,
        action_type=action_type,
        old_value=old_value,
        new_value=appointment_details,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_lab_result_event(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    patient_id: str,
    action_type: str,
    lab_data: Any,
    source_page: Optional[str] = None,
    *,
    old_value: Any = None,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Upload / update / delete. Pass ``old_value=`` for the prior result."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=patient_id,
        module=AuditModule.lab_results.value,
        action_type=action_type,
        old_value=old_value,
        new_value=lab_data,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_ml_settings_change(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    action_type: str,
    old_settings: Any,
    new_settings: Any,
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        module=AuditModule.ml_settings.value,
        action_type=action_type,
        old_value=old_settings,
        new_value=new_settings,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )


async def log_credential_event(
    actor_type: str,
    actor_id: str,
    actor_name: str,
    subject_id: Optional[str],
    action_type: str,
    description: Optional[str],
    source_page: Optional[str] = None,
    *,
    outcome: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> None:
    """Password resets, failed logins and other credential events."""
    await record_event(
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        subject_id=subject_id,
        module=AuditModule.credentials.value,
        action_type=action_type,
        new_value=description,
        source_page=source_page,
        outcome=outcome,
        context=context,
    )
