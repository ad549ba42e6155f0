"""Tests for the in-memory repositories' constraint semantics."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from src.laptrack.assignment.adapters import (
    InMemoryDeviceRepository,
    InMemoryDistributionRepository,
)
from src.laptrack.assignment.domain.entities import (
    Device,
    Distribution,
    DistributionState,
    Holder,
    Origin,
)
from src.laptrack.common.exceptions import ConflictError


def make_device(serial="SN-1") -> Device:
    return Device(
        name="ThinkPad",
        serial_number=serial,
        model="T14",
        price=Decimal("1000"),
        origin=Origin.DONATION,
    )


class TestInMemoryDeviceRepository:
    """Tests for InMemoryDeviceRepository."""

    @pytest.mark.asyncio
    async def test_duplicate_serial_conflicts(self):
        repo = InMemoryDeviceRepository()
        await repo.create(make_device("SN-1"))

        with pytest.raises(ConflictError) as exc_info:
            await repo.create(make_device("SN-1"))

        assert exc_info.value.constraint == "devices_serial_number_key"

    @pytest.mark.asyncio
    async def test_update_to_taken_serial_conflicts(self):
        repo = InMemoryDeviceRepository()
        await repo.create(make_device("SN-1"))
        second = await repo.create(make_device("SN-2"))

        with pytest.raises(ConflictError):
            await repo.update_fields(second.id, {"serial_number": "SN-1"})

    @pytest.mark.asyncio
    async def test_returned_copies_are_detached(self):
        repo = InMemoryDeviceRepository()
        created = await repo.create(make_device())

        created.name = "mutated locally"

        assert (await repo.get(created.id)).name == "ThinkPad"

    @pytest.mark.asyncio
    async def test_set_pointer_on_missing_device(self):
        repo = InMemoryDeviceRepository()
        assert await repo.set_current_distribution(uuid4(), uuid4()) is None

    @pytest.mark.asyncio
    async def test_delete_returns_record(self):
        repo = InMemoryDeviceRepository()
        created = await repo.create(make_device())

        deleted = await repo.delete(created.id)

        assert deleted.id == created.id
        assert await repo.get(created.id) is None
        assert await repo.delete(created.id) is None

    @pytest.mark.asyncio
    async def test_delete_returns_detached_copy(self):
        repo = InMemoryDeviceRepository()
        created = await repo.create(make_device())
        stored = repo._devices[created.id]

        deleted = await repo.delete(created.id)

        assert deleted == stored
        assert deleted is not stored


class TestInMemoryDistributionRepository:
    """Tests for InMemoryDistributionRepository."""

    @pytest.mark.asyncio
    async def test_second_active_distribution_conflicts(self):
        repo = InMemoryDistributionRepository()
        device_id = uuid4()
        await repo.create(Distribution(device_id=device_id, holder=Holder(name="Alice")))

        with pytest.raises(ConflictError) as exc_info:
            await repo.create(Distribution(device_id=device_id, holder=Holder(name="Bob")))

        assert exc_info.value.constraint == "uq_distributions_active_device"

    @pytest.mark.asyncio
    async def test_concurrent_creates_admit_exactly_one(self):
        repo = InMemoryDistributionRepository()
        device_id = uuid4()

        results = await asyncio.gather(
            *(
                repo.create(Distribution(device_id=device_id, holder=Holder(name=f"H{i}")))
                for i in range(5)
            ),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Distribution)]
        losers = [r for r in results if isinstance(r, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 4

    @pytest.mark.asyncio
    async def test_mark_returned_is_conditional(self):
        repo = InMemoryDistributionRepository()
        created = await repo.create(Distribution(device_id=uuid4(), holder=Holder(name="Alice")))
        first_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

        returned = await repo.mark_returned(created.id, first_time, "done")
        again = await repo.mark_returned(created.id, datetime.now(timezone.utc), "again")

        assert returned.returned_at == first_time
        assert again is None
        assert (await repo.get(created.id)).returned_at == first_time

    @pytest.mark.asyncio
    async def test_new_active_allowed_after_return(self):
        repo = InMemoryDistributionRepository()
        device_id = uuid4()
        first = await repo.create(Distribution(device_id=device_id, holder=Holder(name="Alice")))
        await repo.mark_returned(first.id, datetime.now(timezone.utc), "done")

        second = await repo.create(Distribution(device_id=device_id, holder=Holder(name="Bob")))

        assert (await repo.find_active_by_device(device_id)).id == second.id

    @pytest.mark.asyncio
    async def test_list_by_state(self):
        repo = InMemoryDistributionRepository()
        active = await repo.create(Distribution(device_id=uuid4(), holder=Holder(name="A")))
        done = await repo.create(Distribution(device_id=uuid4(), holder=Holder(name="B")))
        await repo.mark_returned(done.id, datetime.now(timezone.utc), "done")

        assert [d.id for d in await repo.list_by_state(DistributionState.ACTIVE)] == [active.id]
        assert [d.id for d in await repo.list_by_state(DistributionState.RETURNED)] == [done.id]
        assert len(await repo.list_by_state()) == 2

    @pytest.mark.asyncio
    async def test_delete_active_ignores_returned(self):
        repo = InMemoryDistributionRepository()
        created = await repo.create(Distribution(device_id=uuid4(), holder=Holder(name="A")))
        await repo.mark_returned(created.id, datetime.now(timezone.utc), "done")

        assert await repo.delete_active(created.id) is False
        assert await repo.get(created.id) is not None
