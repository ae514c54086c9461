"""
backend/diatrack/services/audit_query_service.py

Purpose:
    Read side of the audit trail for the admin "Audit Monitoring" screen:
    filtered, paginated listing, distinct-value lookups for filter dropdowns,
    and CSV export for regulatory requests. Strictly read-only.

Dependencies:
    - diatrack.database
    - diatrack.models.audit
"""

import csv
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional

import diatrack.database as _db
from diatrack.config import settings
from diatrack.models.audit import AuditLogEntry, AuditLogPage
from diatrack.utils import ensure_utc, parse_day

logger = logging.getLogger("diatrack.audit_query")

SEARCH_FIELDS = ("actor_name", "subject_id", "old_value", "new_value")
DISTINCT_FIELDS = {"module", "action_type", "actor_type", "source_page"}
EXPORT_COLUMNS = [
    "recorded_at",
    "actor_type",
    "actor_id",
    "actor_name",
    "subject_id",
    "module",
    "action_type",
    "old_value",
    "new_value",
    "source_page",
    "ip_address",
    "user_agent",
    "session_id",
    "outcome",
]


@dataclass(frozen=True)
class AuditLogFilters:
    module: Optional[str] = None
    actor_type: Optional[str] = None
    action_type: Optional[str] = None
    actor_id: Optional[str] = None
    subject_id: Optional[str] = None
    outcome: Optional[str] = None
    date: Optional[str] = None  # single day, YYYY-MM-DD
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    search: Optional[str] = None


def build_audit_query(filters: AuditLogFilters) -> dict:
    """Translate viewer filters into a Mongo query. Malformed dates are ignored."""
    query: dict = {}
    for field in ("module", "actor_type", "action_type", "actor_id", "subject_id", "outcome"):
        value = getattr(filters, field)
        if value:
            query[field] = value

    if filters.date:
        start, end = parse_day(filters.date), parse_day(filters.date, end_of_day=True)
    else:
        start, end = parse_day(filters.date_from), parse_day(filters.date_to, end_of_day=True)
    ts_query: dict = {}
    if start:
        ts_query["$gte"] = start
    if end:
        ts_query["$lte"] = end
    if ts_query:
        query["recorded_at"] = ts_query

    term = (filters.search or "").strip()
    if term:
        pattern = {"$regex": re.escape(term), "$options": "i"}
        query["$or"] = [{field: pattern} for field in SEARCH_FIELDS]

    return query


def entry_from_document(doc: dict) -> AuditLogEntry:
    recorded_at = doc.get("recorded_at")
    return AuditLogEntry(
        id=str(doc["_id"]),
        recorded_at=ensure_utc(recorded_at) if recorded_at else None,
        **{k: doc.get(k) for k in AuditLogEntry.model_fields if k not in ("id", "recorded_at")},
    )


async def list_audit_logs(
    filters: AuditLogFilters,
    *,
    limit: int = 50,
    offset: int = 0,
) -> AuditLogPage:
    """Newest first, like the viewer shows them."""
    limit = max(1, min(limit, settings.AUDIT_LIST_MAX_LIMIT))
    offset = max(0, offset)
    query = build_audit_query(filters)

    total = await _db.db.audit_logs.count_documents(query)
    docs = (
        await _db.db.audit_logs.find(query)
        .sort("recorded_at", -1)
        .skip(offset)
        .limit(limit)
        .to_list(length=limit)
    )
    return AuditLogPage(
        total=total,
        offset=offset,
        limit=limit,
        items=[entry_from_document(doc) for doc in docs],
    )


async def list_distinct(field: str) -> list[str]:
    if field not in DISTINCT_FIELDS:
        raise ValueError(f"Unsupported audit field: {field}")
    values = await _db.db.audit_logs.distinct(field)
    return sorted(v for v in values if v)


_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _csv_cell(value) -> str:
    """Neutralize spreadsheet formulas in free-text cells ('=cmd|...' style injection)."""
    if value is None:
        return ""
    text = str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "'" + text
    return text


async def export_audit_logs_csv(filters: AuditLogFilters) -> str:
    query = build_audit_query(filters)
    max_rows = settings.AUDIT_EXPORT_MAX_ROWS
    docs = await _db.db.audit_logs.find(query).sort("recorded_at", -1).to_list(length=max_rows)
    if len(docs) >= max_rows:
        logger.warning("Audit export truncated at %d rows (query=%s)", max_rows, query)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for doc in docs:
        entry = entry_from_document(doc)
        row = []
        for column in EXPORT_COLUMNS:
            value = getattr(entry, column)
            if column == "recorded_at" and value is not None:
                value = value.isoformat()
            row.append(_csv_cell(value))
        writer.writerow(row)
    return output.getvalue()


def format_change_value(old_value: Optional[str], new_value: Optional[str]) -> str:
    """Human summary of a before/after pair as shown in the viewer table."""
    if not old_value and not new_value:
        return "N/A"
    if not old_value:
        return new_value
    if not new_value:
        return f"{old_value} → Deleted"
    return f"{old_value} → {new_value}"


def actor_display_name(entry: AuditLogEntry) -> str:
    return f"{entry.actor_name} ({entry.actor_type.capitalize()})"
