#!/usr/bin/env python3
"""Tests for the database utilities and the PostgreSQL repositories.

Tests cover:
    - Driver error conversion
    - Connection acquisition failures
    - Partial unique index on active distributions
    - Conditional return update
    - Generated assigned / returned_flag columns

BEST PRACTICES FOR TEST ISOLATION:
    1. All test data uses 'TEST-' serial numbers for easy identification
    2. Rows created by a test are deleted in fixture teardown
    3. DATABASE_URL loaded from .env for local dev

NOTE: The integration classes require a running PostgreSQL instance.
"""
import asyncio
import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio
from dotenv import load_dotenv

from src.laptrack.assignment.adapters import (
    PostgresDeviceRepository,
    PostgresDistributionRepository,
    apply_schema,
)
from src.laptrack.assignment.domain.entities import (
    Device,
    Distribution,
    DistributionState,
    Holder,
    Origin,
)
from src.laptrack.common.database import (
    check_database_health,
    convert_db_exception,
    database_connection,
)
from src.laptrack.common.exceptions import (
    ConflictError,
    ConnectionPoolError,
    DatabaseError,
    NotFoundError,
    TransactionError,
)

# Load environment variables from .env file (for local development)
load_dotenv()

requires_db = pytest.mark.skipif(
    not os.getenv("DATABASE_URL"),
    reason="DATABASE_URL not set",
)


# ============================================
# Error Conversion
# ============================================

class TestConvertDbException:
    """Driver errors map onto the service exception hierarchy."""

    def test_unique_violation(self):
        result = convert_db_exception(asyncpg.exceptions.UniqueViolationError("duplicate key"))

        assert isinstance(result, ConflictError)
        assert result.details["constraint"] == "unique"
        assert result.status_code == 400

    def test_duplicate_text_fallback(self):
        result = convert_db_exception(Exception("duplicate key value violates constraint"))

        assert isinstance(result, ConflictError)

    def test_deadlock(self):
        result = convert_db_exception(Exception("deadlock detected"))

        assert isinstance(result, TransactionError)

    def test_timeout(self):
        result = convert_db_exception(Exception("query timed out"))

        assert isinstance(result, TransactionError)

    def test_generic(self):
        result = convert_db_exception(Exception("something odd"))

        assert type(result) is DatabaseError
        assert result.status_code == 500

    def test_service_errors_pass_through(self):
        original = NotFoundError("laptop", "abc", "Laptop not found")

        assert convert_db_exception(original) is original


# ============================================
# Connection Context Manager
# ============================================

class TestDatabaseConnection:
    """Tests for database_connection with a mocked pool."""

    @pytest.mark.asyncio
    async def test_missing_pool(self):
        with pytest.raises(ConnectionPoolError):
            async with database_connection(None):
                pass

    @pytest.mark.asyncio
    async def test_acquire_failure(self):
        pool = MagicMock()
        pool.acquire = AsyncMock(side_effect=OSError("connection refused"))

        with pytest.raises(ConnectionPoolError) as exc_info:
            async with database_connection(pool):
                pass

        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_driver_error_converted_and_connection_released(self):
        conn = MagicMock()
        pool = MagicMock()
        pool.acquire = AsyncMock(return_value=conn)
        pool.release = AsyncMock()

        with pytest.raises(ConflictError):
            async with database_connection(pool):
                raise asyncpg.exceptions.UniqueViolationError("duplicate key")

        pool.release.assert_awaited_once_with(conn)

    @pytest.mark.asyncio
    async def test_health_without_pool(self):
        result = await check_database_health(None)

        assert result["healthy"] is False


# ============================================
# Integration Fixtures
# ============================================

@pytest_asyncio.fixture
async def db_pool():
    """Create a database connection pool with the schema applied."""
    pool = await asyncpg.create_pool(
        os.getenv("DATABASE_URL"),
        min_size=1,
        max_size=5,
    )
    await apply_schema(pool)
    yield pool
    await pool.close()


@pytest_asyncio.fixture
async def device(db_pool):
    """A TEST- device, removed with its distributions afterwards."""
    repo = PostgresDeviceRepository(db_pool)
    created = await repo.create(
        Device(
            name="TEST Laptop",
            serial_number=f"TEST-{uuid4().hex[:12]}",
            model="Latitude 5440",
            price=Decimal("850.00"),
            origin=Origin.PURCHASED,
        )
    )
    yield created
    async with db_pool.acquire() as conn:
        await conn.execute("DELETE FROM distributions WHERE device_id = $1", created.id)
        await conn.execute("DELETE FROM devices WHERE id = $1", created.id)


# ============================================
# Integration Tests
# ============================================

@requires_db
class TestActiveDistributionIndex:
    """The partial unique index admits one active distribution per device."""

    @pytest.mark.asyncio
    async def test_second_active_rejected(self, db_pool, device):
        repo = PostgresDistributionRepository(db_pool)
        await repo.create(Distribution(device_id=device.id, holder=Holder(name="Alice")))

        with pytest.raises(ConflictError) as exc_info:
            await repo.create(Distribution(device_id=device.id, holder=Holder(name="Bob")))

        assert exc_info.value.details["constraint"] == "uq_distributions_active_device"

    @pytest.mark.asyncio
    async def test_concurrent_inserts_single_winner(self, db_pool, device):
        repo = PostgresDistributionRepository(db_pool)

        results = await asyncio.gather(
            *[
                repo.create(Distribution(device_id=device.id, holder=Holder(name=f"H{i}")))
                for i in range(5)
            ],
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Distribution)]
        assert len(winners) == 1
        assert all(isinstance(r, ConflictError) for r in results if r not in winners)

    @pytest.mark.asyncio
    async def test_returned_rows_do_not_block(self, db_pool, device):
        repo = PostgresDistributionRepository(db_pool)
        first = await repo.create(Distribution(device_id=device.id, holder=Holder(name="Alice")))
        await repo.mark_returned(first.id, datetime.now(timezone.utc), "upgrade")

        second = await repo.create(Distribution(device_id=device.id, holder=Holder(name="Bob")))

        assert second.is_active
        assert (await repo.find_active_by_device(device.id)).id == second.id


@requires_db
class TestConditionalReturn:
    """mark_returned only matches rows that are still active."""

    @pytest.mark.asyncio
    async def test_second_return_matches_nothing(self, db_pool, device):
        repo = PostgresDistributionRepository(db_pool)
        created = await repo.create(Distribution(device_id=device.id, holder=Holder(name="Alice")))

        first = await repo.mark_returned(created.id, datetime.now(timezone.utc), "done")
        second = await repo.mark_returned(created.id, datetime.now(timezone.utc), "again")

        assert first.returned_flag is True
        assert first.returned_reason == "done"
        assert second is None

    @pytest.mark.asyncio
    async def test_state_listing(self, db_pool, device):
        repo = PostgresDistributionRepository(db_pool)
        created = await repo.create(Distribution(device_id=device.id, holder=Holder(name="Alice")))
        await repo.mark_returned(created.id, datetime.now(timezone.utc), "done")

        returned_ids = {d.id for d in await repo.list_by_state(DistributionState.RETURNED)}
        active_ids = {d.id for d in await repo.list_by_state(DistributionState.ACTIVE)}

        assert created.id in returned_ids
        assert created.id not in active_ids


@requires_db
class TestDevicePointer:
    """The generated assigned column follows current_distribution_id."""

    @pytest.mark.asyncio
    async def test_assigned_follows_pointer(self, db_pool, device):
        repo = PostgresDeviceRepository(db_pool)
        distribution_id = uuid4()

        pointed = await repo.set_current_distribution(device.id, distribution_id)
        async with db_pool.acquire() as conn:
            assigned = await conn.fetchval("SELECT assigned FROM devices WHERE id = $1", device.id)
        cleared = await repo.set_current_distribution(device.id, None)

        assert pointed.current_distribution_id == distribution_id
        assert assigned is True
        assert cleared.assigned is False

    @pytest.mark.asyncio
    async def test_duplicate_serial(self, db_pool, device):
        repo = PostgresDeviceRepository(db_pool)

        with pytest.raises(ConflictError):
            await repo.create(
                Device(
                    name="TEST Twin",
                    serial_number=device.serial_number,
                    model="Latitude 5440",
                    price=Decimal("1"),
                    origin=Origin.DONATION,
                )
            )
