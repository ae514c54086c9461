"""
backend/diatrack/routers/audit.py

Purpose:
    Admin audit log viewer: list with filters and pagination, filter
    dropdown values, CSV export. Read-only; no update or delete routes exist.

Dependencies:
    - diatrack.services.audit_query_service
    - diatrack.services.auth_service
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from diatrack.services.audit_query_service import (
    AuditLogFilters,
    actor_display_name,
    export_audit_logs_csv,
    format_change_value,
    list_audit_logs,
    list_distinct,
)
from diatrack.services.auth_service import get_admin_user

router = APIRouter(prefix="/api/admin/audit-logs", tags=["audit"])


def _filters(
    module: Optional[str] = Query(None),
    actor_type: Optional[str] = Query(None),
    action_type: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    subject_id: Optional[str] = Query(None),
    outcome: Optional[str] = Query(None),
    date: Optional[str] = Query(None, description="Single day, YYYY-MM-DD"),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
) -> AuditLogFilters:
    return AuditLogFilters(
        module=module,
        actor_type=actor_type,
        action_type=action_type,
        actor_id=actor_id,
        subject_id=subject_id,
        outcome=outcome,
        date=date,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )


@router.get("")
async def get_audit_logs(
    filters: AuditLogFilters = Depends(_filters),
    limit: int = Query(10, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin=Depends(get_admin_user),
):
    """List audit logs, newest first (admin only)."""
    page = await list_audit_logs(filters, limit=limit, offset=offset)
    return {
        "total": page.total,
        "offset": page.offset,
        "limit": page.limit,
        "items": [
            {
                **entry.model_dump(mode="json"),
                "actor_display": actor_display_name(entry),
                "change": format_change_value(entry.old_value, entry.new_value),
            }
            for entry in page.items
        ],
    }


@router.get("/modules")
async def get_audit_modules(admin=Depends(get_admin_user)):
    return await list_distinct("module")


@router.get("/actions")
async def get_audit_actions(admin=Depends(get_admin_user)):
    return await list_distinct("action_type")


@router.get("/export")
async def export_audit_logs(
    filters: AuditLogFilters = Depends(_filters),
    admin=Depends(get_admin_user),
):
    """Export audit logs as CSV for regulatory requests (admin only)."""
    content = await export_audit_logs_csv(filters)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=diatrack-audit-logs.csv"},
    )
