import os
from collections.abc import AsyncGenerator
from datetime import date, time, timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from consultorio.core.redis_client import CacheManager
from consultorio.core.security import create_access_token
from consultorio.database import get_db, to_async_url
from consultorio.dependencies import get_cache_manager
from consultorio.main import app
from consultorio.models import (
    availability_templates,
    doctor_specialties,
    doctors,
    metadata,
    patients,
    specialties,
    time_slots,
)
from consultorio.schemas.context import ActorContext, ActorRole

# A Monday, so template rows for day_of_week=1 apply
MONDAY = date(2030, 3, 4)

PATIENT_USER_ID = 1001
OTHER_PATIENT_USER_ID = 1002
DOCTOR_USER_ID = 2001
STAFF_USER_ID = 3001


def _test_database_url(tmp_path: Any) -> str:
    # TEST_DATABASE_URL may point at a disposable PostgreSQL database;
    # otherwise each test gets its own SQLite file
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        return to_async_url(url)
    return f"sqlite+aiosqlite:///{tmp_path / 'consultorio_test.db'}"


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create an engine on a fresh schema."""
    engine = create_async_engine(_test_database_url(tmp_path), poolclass=NullPool)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need more than one connection."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis stand-in that always misses."""
    redis_client = MagicMock()
    redis_client.get.return_value = None
    return redis_client


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, mock_redis: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: CacheManager(mock_redis)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Seed data
# ============================================================================


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession) -> dict[str, Any]:
    """
    One doctor practicing one specialty, one patient, and a 09:00-09:30 slot
    offered every Monday.
    """
    specialty_id = (
        await db_session.execute(
            insert(specialties)
            .values(name="Cardiology", code="CARD")
            .returning(specialties.c.id)
        )
    ).scalar_one()

    doctor = (
        (
            await db_session.execute(
                insert(doctors)
                .values(
                    user_id=DOCTOR_USER_ID,
                    license_number="MED-12345",
                    first_name="Ana",
                    last_name="Souza",
                )
                .returning(doctors.c.id, doctors.c.public_id)
            )
        )
        .mappings()
        .one()
    )

    patient = (
        (
            await db_session.execute(
                insert(patients)
                .values(user_id=PATIENT_USER_ID, first_name="Bruno", last_name="Lima")
                .returning(patients.c.id, patients.c.public_id)
            )
        )
        .mappings()
        .one()
    )

    other_patient = (
        (
            await db_session.execute(
                insert(patients)
                .values(user_id=OTHER_PATIENT_USER_ID, first_name="Carla", last_name="Dias")
                .returning(patients.c.id, patients.c.public_id)
            )
        )
        .mappings()
        .one()
    )

    await db_session.execute(
        insert(doctor_specialties).values(
            doctor_id=doctor["id"], specialty_id=specialty_id, is_primary=True
        )
    )

    slot_ids = []
    for start, end in ((time(9, 0), time(9, 30)), (time(9, 30), time(10, 0))):
        slot_ids.append(
            (
                await db_session.execute(
                    insert(time_slots)
                    .values(start_time=start, end_time=end, slot_minutes=30)
                    .returning(time_slots.c.id)
                )
            ).scalar_one()
        )

    # Both slots on Mondays
    for slot_id in slot_ids:
        await db_session.execute(
            insert(availability_templates).values(
                doctor_id=doctor["id"], day_of_week=1, time_slot_id=slot_id, is_enabled=True
            )
        )

    await db_session.commit()

    return {
        "specialty_id": specialty_id,
        "doctor_pk": doctor["id"],
        "doctor_id": doctor["public_id"],
        "patient_pk": patient["id"],
        "patient_id": patient["public_id"],
        "other_patient_id": other_patient["public_id"],
        "slot_id": slot_ids[0],
        "second_slot_id": slot_ids[1],
    }


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def patient_actor() -> ActorContext:
    return ActorContext(user_id=PATIENT_USER_ID, role=ActorRole.PATIENT, request_id="req-patient")


@pytest.fixture
def doctor_actor() -> ActorContext:
    return ActorContext(user_id=DOCTOR_USER_ID, role=ActorRole.DOCTOR)


@pytest.fixture
def staff_actor() -> ActorContext:
    return ActorContext(user_id=STAFF_USER_ID, role=ActorRole.STAFF)


def bearer(user_id: int, role: ActorRole) -> dict[str, str]:
    """Authorization header for a user id and role."""
    token = create_access_token(
        data={"sub": str(user_id), "role": role.value},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_headers() -> dict[str, str]:
    return bearer(PATIENT_USER_ID, ActorRole.PATIENT)


@pytest.fixture
def other_patient_headers() -> dict[str, str]:
    return bearer(OTHER_PATIENT_USER_ID, ActorRole.PATIENT)


@pytest.fixture
def doctor_headers() -> dict[str, str]:
    return bearer(DOCTOR_USER_ID, ActorRole.DOCTOR)


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return bearer(STAFF_USER_ID, ActorRole.STAFF)
