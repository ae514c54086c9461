"""
backend/tests/test_audit_query_service.py

Purpose:
    Admin viewer read side: filter translation, pagination, distinct values,
    CSV export and the display helpers.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

import pytest
from bson import ObjectId

from diatrack.services import audit_query_service
from diatrack.services.audit_query_service import (
    AuditLogFilters,
    actor_display_name,
    build_audit_query,
    export_audit_logs_csv,
    format_change_value,
    list_audit_logs,
    list_distinct,
)


def _log(day: int, **fields) -> dict:
    doc = {
        "_id": ObjectId(),
        "recorded_at": datetime(2026, 3, day, 9, 30, tzinfo=timezone.utc),
        "actor_type": "doctor",
        "actor_id": "D1",
        "actor_name": "Dr. Ana Ruiz",
        "subject_id": None,
        "module": "credentials",
        "action_type": "login",
        "old_value": None,
        "new_value": None,
        "source_page": "Login Page",
        "ip_address": None,
        "user_agent": "diatrack-backend",
        "session_id": None,
        "outcome": "success",
    }
    doc.update(fields)
    return doc


@pytest.fixture
def seeded(fake_db):
    fake_db.audit_logs.docs = [
        _log(1),
        _log(2, module="medications", action_type="edit", subject_id="P9",
             old_value="Metformin 500mg", new_value="Metformin 750mg", source_page="Care Plan Tab"),
        _log(3, actor_type="patient", actor_id="P9", actor_name="Pat Lee", module="metrics",
             action_type="create", subject_id="P9", new_value='{"blood_glucose":120}'),
        _log(3, module="credentials", action_type="login", outcome="failure",
             actor_type="system", actor_id="system", actor_name="System"),
    ]
    return fake_db


def test_query_equality_and_search_escapes_regex():
    query = build_audit_query(AuditLogFilters(module="metrics", actor_type="patient", search=" a.b "))
    assert query["module"] == "metrics"
    assert query["actor_type"] == "patient"
    assert query["$or"][0] == {"actor_name": {"$regex": r"a\.b", "$options": "i"}}
    assert len(query["$or"]) == len(audit_query_service.SEARCH_FIELDS)


def test_query_single_day_overrides_range():
    query = build_audit_query(AuditLogFilters(date="2026-03-02", date_from="2026-01-01"))
    assert query["recorded_at"]["$gte"] == datetime(2026, 3, 2, tzinfo=timezone.utc)
    assert query["recorded_at"]["$lte"] == datetime(2026, 3, 2, 23, 59, 59, 999000, tzinfo=timezone.utc)


def test_query_ignores_malformed_dates():
    assert build_audit_query(AuditLogFilters(date_from="03/02/2026", date_to="")) == {}


@pytest.mark.asyncio
async def test_list_is_newest_first_and_paginated(seeded):
    page = await list_audit_logs(AuditLogFilters(), limit=2, offset=0)
    assert page.total == 4
    assert len(page.items) == 2
    assert page.items[0].recorded_at >= page.items[1].recorded_at
    assert page.items[-1].recorded_at.day == 3

    rest = await list_audit_logs(AuditLogFilters(), limit=2, offset=2)
    assert [e.recorded_at.day for e in rest.items] == [2, 1]


@pytest.mark.asyncio
async def test_list_filters_by_date_and_search(seeded):
    page = await list_audit_logs(AuditLogFilters(date="2026-03-03"))
    assert page.total == 2

    page = await list_audit_logs(AuditLogFilters(search="metformin"))
    assert page.total == 1
    assert page.items[0].module == "medications"

    page = await list_audit_logs(AuditLogFilters(outcome="failure"))
    assert [e.actor_type for e in page.items] == ["system"]


@pytest.mark.asyncio
async def test_list_clamps_limit(seeded, monkeypatch):
    monkeypatch.setattr(audit_query_service.settings, "AUDIT_LIST_MAX_LIMIT", 3)
    page = await list_audit_logs(AuditLogFilters(), limit=1000, offset=-5)
    assert page.limit == 3
    assert page.offset == 0
    assert len(page.items) == 3


@pytest.mark.asyncio
async def test_distinct_values_sorted_and_restricted(seeded):
    assert await list_distinct("module") == ["credentials", "medications", "metrics"]
    with pytest.raises(ValueError):
        await list_distinct("ip_address")


@pytest.mark.asyncio
async def test_csv_export_has_header_and_rows(seeded):
    content = await export_audit_logs_csv(AuditLogFilters(module="medications"))
    rows = list(csv.reader(io.StringIO(content)))
    assert rows[0] == audit_query_service.EXPORT_COLUMNS
    assert len(rows) == 2
    row = dict(zip(rows[0], rows[1]))
    assert row["old_value"] == "Metformin 500mg"
    assert row["subject_id"] == "P9"
    assert row["ip_address"] == ""
    assert row["recorded_at"].startswith("2026-03-02T09:30:00")


def test_change_value_formatting():
    assert format_change_value(None, None) == "N/A"
    assert format_change_value(None, "Created") == "Created"
    assert format_change_value("Metformin 500mg", None) == "Metformin 500mg → Deleted"
    assert format_change_value("a", "b") == "a → b"


def test_actor_display_name():
    entry = audit_query_service.entry_from_document(_log(1))
    assert actor_display_name(entry) == "Dr. Ana Ruiz (Doctor)"


@pytest.mark.asyncio
async def test_csv_export_neutralizes_formula_cells(fake_db):
    fake_db.audit_logs.docs = [
        _log(4, actor_name="=HYPERLINK(\"http://evil\")", new_value="+1 unit", old_value="-2 units",
             source_page="@SUM(A1)"),
    ]

    content = await export_audit_logs_csv(AuditLogFilters())
    row = dict(zip(*list(csv.reader(io.StringIO(content)))))

    assert row["actor_name"] == "'=HYPERLINK(\"http://evil\")"
    assert row["new_value"] == "'+1 unit"
    assert row["old_value"] == "'-2 units"
    assert row["source_page"] == "'@SUM(A1)"
    assert row["actor_type"] == "doctor"
