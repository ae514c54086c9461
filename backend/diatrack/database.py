"""
backend/diatrack/database.py

Purpose:
    MongoDB connection bootstrap and index management for the audit trail
    and the clinical collections that feed it.

Dependencies:
    - motor.motor_asyncio
    - diatrack.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from diatrack.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("diatrack.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=2,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info("Connected to MongoDB database %s", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent; safe to run repeatedly."""

    # ---- Users (profiles mirrored from the identity provider) ----

    await db.users.create_index("email", unique=True, sparse=True)
    await db.users.create_index("role")

    # ---- Patients ----

    await db.patients.create_index("email", unique=True, sparse=True)
    await db.patients.create_index("user_id", unique=True, sparse=True)
    await db.patients.create_index("doctor_id")
    await db.patients.create_index([("last_name", 1), ("first_name", 1)])

    # ---- Health Metrics ----

    await db.health_metrics.create_index([("patient_id", 1), ("recorded_at", -1)])

    # ---- Appointments ----

    await db.appointments.create_index([("patient_id", 1), ("appointment_at", -1)])
    await db.appointments.create_index([("doctor_id", 1), ("appointment_at", 1)])
    await db.appointments.create_index("status")

    # ---- Lab Results ----

    await db.lab_results.create_index([("patient_id", 1), ("test_date", -1)])

    # ---- Audit Logs (insert-only) ----

    await db.audit_logs.create_index("recorded_at")
    await db.audit_logs.create_index([("module", 1), ("recorded_at", -1)])
    await db.audit_logs.create_index([("action_type", 1), ("recorded_at", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("recorded_at", -1)])
    await db.audit_logs.create_index([("subject_id", 1), ("recorded_at", -1)])
