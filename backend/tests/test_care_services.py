"""
backend/tests/test_care_services.py

Purpose:
    Metrics, appointments, lab results and ML settings: each business write
    produces one audit record in its module with before/after state.

Dependencies:
    - pytest
    - diatrack.services.*
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import OperationFailure

from diatrack.models.appointment import AppointmentCreate, AppointmentReschedule
from diatrack.models.health_metrics import HealthMetricsCreate
from diatrack.models.lab_result import LabResultCreate, LabResultUpdate
from diatrack.models.ml_settings import MLSettings
from diatrack.services import (
    appointment_service,
    health_metrics_service,
    lab_result_service,
    ml_settings_service,
)
from diatrack.services.audit_service import Actor

PATIENT = Actor("patient", "P9", "Pat Lee")
SECRETARY = Actor("secretary", "S1", "Sam Ortiz")
DOCTOR = Actor("doctor", "D1", "Dr. Ana Ruiz")
ADMIN = Actor("admin", "A1", "Alex Admin")


# ---------------------------------------------------------------------------
# Health metrics
# ---------------------------------------------------------------------------


@pytest.fixture
def patient_id(fake_db):
    oid = ObjectId()
    fake_db.patients.docs = [{"_id": oid, "first_name": "Pat", "last_name": "Lee"}]
    return str(oid)


@pytest.mark.asyncio
async def test_metrics_submission_stores_readings_as_json(fake_db, patient_id):
    await health_metrics_service.submit_metrics(patient_id, HealthMetricsCreate(blood_glucose=120), PATIENT)

    assert fake_db.health_metrics.docs[0]["blood_glucose"] == 120
    [log] = fake_db.audit_logs.docs
    assert log["module"] == "metrics"
    assert log["action_type"] == "create"
    assert log["subject_id"] == patient_id
    assert log["source_page"] == "Checkup Notes"
    assert json.loads(log["new_value"]) == {"blood_glucose": 120.0}


@pytest.mark.asyncio
async def test_metrics_without_readings_rejected(fake_db):
    with pytest.raises(HTTPException) as exc_info:
        await health_metrics_service.submit_metrics("P9", HealthMetricsCreate(notes="felt fine"), PATIENT)

    assert exc_info.value.status_code == 400
    assert fake_db.audit_logs.docs == []


@pytest.mark.asyncio
async def test_metrics_store_failure_audited(fake_db, patient_id):
    fake_db.health_metrics.fail_writes = OperationFailure("disk full")

    with pytest.raises(OperationFailure):
        await health_metrics_service.submit_metrics(patient_id, HealthMetricsCreate(weight=81.5), PATIENT)

    [log] = fake_db.audit_logs.docs
    assert log["outcome"] == "failure"
    assert log["new_value"] == "Failed to submit: OperationFailure"


@pytest.mark.asyncio
async def test_metrics_for_unknown_patient_rejected(fake_db):
    with pytest.raises(HTTPException) as exc_info:
        await health_metrics_service.submit_metrics(str(ObjectId()), HealthMetricsCreate(weight=80), PATIENT)

    assert exc_info.value.status_code == 404
    assert fake_db.health_metrics.docs == []
    assert fake_db.audit_logs.docs == []


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


def _appointment(**fields) -> dict:
    doc = {
        "_id": ObjectId(),
        "patient_id": "P9",
        "doctor_id": "D1",
        "appointment_at": datetime(2026, 5, 4, 10, 0, tzinfo=timezone.utc),
        "status": "scheduled",
    }
    doc.update(fields)
    return doc


@pytest.mark.asyncio
async def test_schedule_appointment_audited(fake_db):
    body = AppointmentCreate(
        patient_id="P9", doctor_id="D1", appointment_at=datetime(2026, 5, 4, 10, 0), reason="Follow-up",
    )
    doc = await appointment_service.schedule_appointment(body, SECRETARY)

    assert doc["status"] == "scheduled"
    assert doc["appointment_at"].tzinfo is not None
    [log] = fake_db.audit_logs.docs
    assert log["module"] == "appointments"
    assert log["action_type"] == "schedule"
    assert log["actor_type"] == "secretary"
    assert json.loads(log["new_value"])["reason"] == "Follow-up"


@pytest.mark.asyncio
async def test_cancel_captures_previous_state(fake_db):
    appt = _appointment()
    fake_db.appointments.docs = [appt]

    updated = await appointment_service.cancel_appointment(str(appt["_id"]), SECRETARY)

    assert updated["status"] == "cancelled"
    [log] = fake_db.audit_logs.docs
    assert log["action_type"] == "cancel"
    assert log["source_page"] == "Appointment Manager"
    assert json.loads(log["old_value"])["status"] == "scheduled"
    assert json.loads(log["new_value"])["status"] == "cancelled"


@pytest.mark.asyncio
async def test_cancelled_appointment_cannot_be_rescheduled(fake_db):
    appt = _appointment(status="cancelled")
    fake_db.appointments.docs = [appt]

    with pytest.raises(HTTPException) as exc_info:
        await appointment_service.reschedule_appointment(
            str(appt["_id"]), AppointmentReschedule(appointment_at=datetime(2026, 6, 1, 9, 0)), SECRETARY,
        )

    assert exc_info.value.status_code == 409
    assert fake_db.audit_logs.docs == []


@pytest.mark.asyncio
async def test_reschedule_logs_both_times(fake_db):
    appt = _appointment()
    fake_db.appointments.docs = [appt]

    await appointment_service.reschedule_appointment(
        str(appt["_id"]), AppointmentReschedule(appointment_at=datetime(2026, 6, 1, 9, 0)), SECRETARY,
    )

    [log] = fake_db.audit_logs.docs
    assert log["action_type"] == "reschedule"
    assert json.loads(log["old_value"])["appointment_at"].startswith("2026-05-04")
    assert json.loads(log["new_value"])["appointment_at"].startswith("2026-06-01")


# ---------------------------------------------------------------------------
# Lab results
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lab_result_lifecycle(fake_db):
    body = LabResultCreate(patient_id="P9", test_type="HbA1c", test_date="2026-03-01", results={"hba1c": 7.1})
    doc = await lab_result_service.upload_lab_result(body, DOCTOR)
    lab_id = str(doc["_id"])

    await lab_result_service.update_lab_result(lab_id, LabResultUpdate(results={"hba1c": 6.8}), DOCTOR)
    await lab_result_service.delete_lab_result(lab_id, DOCTOR)

    logs = fake_db.audit_logs.docs
    assert [log["action_type"] for log in logs] == ["upload", "update", "delete"]
    assert all(log["module"] == "lab_results" for log in logs)
    assert all(log["source_page"] == "Lab Results Portal" for log in logs)
    assert json.loads(logs[1]["old_value"])["results"] == {"hba1c": 7.1}
    assert json.loads(logs[1]["new_value"])["results"] == {"hba1c": 6.8}
    assert logs[2]["new_value"] == "Lab result deleted"
    assert fake_db.lab_results.docs == []


@pytest.mark.asyncio
async def test_lab_result_empty_update_is_noop(fake_db):
    doc = {"_id": ObjectId(), "patient_id": "P9", "test_type": "Lipids", "results": {}}
    fake_db.lab_results.docs = [doc]

    current = await lab_result_service.update_lab_result(str(doc["_id"]), LabResultUpdate(), DOCTOR)

    assert current["test_type"] == "Lipids"
    assert fake_db.audit_logs.docs == []


# ---------------------------------------------------------------------------
# ML settings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ml_settings_defaults_when_unset(fake_db):
    assert await ml_settings_service.get_ml_settings() == MLSettings()


@pytest.mark.asyncio
async def test_ml_settings_update_records_old_and_new(fake_db):
    body = MLSettings(risk_threshold_high=0.8, auto_classify=True)
    await ml_settings_service.update_ml_settings(body, ADMIN)

    assert (await ml_settings_service.get_ml_settings()).risk_threshold_high == 0.8
    [log] = fake_db.audit_logs.docs
    assert log["module"] == "ml_settings"
    assert log["subject_id"] is None
    assert log["source_page"] == "ML Model Config"
    assert json.loads(log["old_value"])["risk_threshold_high"] == 0.7
    assert json.loads(log["new_value"])["auto_classify"] is True


@pytest.mark.asyncio
async def test_missing_appointment_is_404_without_audit(fake_db):
    with pytest.raises(HTTPException) as exc_info:
        await appointment_service.cancel_appointment(str(ObjectId()), SECRETARY)

    assert exc_info.value.status_code == 404
    assert fake_db.audit_logs.docs == []
