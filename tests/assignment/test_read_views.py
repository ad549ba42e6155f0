"""Tests for ReadViews joins."""

from decimal import Decimal
from uuid import uuid4

import pytest

from src.laptrack.assignment.adapters import (
    InMemoryDeviceRepository,
    InMemoryDistributionRepository,
)
from src.laptrack.assignment.domain.entities import CallerIdentity, Device, Holder, Origin
from src.laptrack.assignment.use_cases import AssignmentEngine, ReadViews
from src.laptrack.common.exceptions import NotFoundError

STAFF = CallerIdentity(user_id="staff-1", role="it_staff")


@pytest.fixture
def device_repo():
    return InMemoryDeviceRepository()


@pytest.fixture
def distribution_repo():
    return InMemoryDistributionRepository()


@pytest.fixture
def engine(device_repo, distribution_repo):
    return AssignmentEngine(device_repo, distribution_repo)


@pytest.fixture
def views(device_repo, distribution_repo):
    return ReadViews(device_repo, distribution_repo)


async def seed_device(device_repo, serial) -> Device:
    return await device_repo.create(
        Device(
            name=f"Laptop {serial}",
            serial_number=serial,
            model="XPS 13",
            price=Decimal("900"),
            origin=Origin.DONATION,
        )
    )


class TestDistributionViews:
    """Tests for the distribution listings."""

    @pytest.mark.asyncio
    async def test_active_and_returned_are_disjoint(self, engine, views, device_repo):
        kept = await seed_device(device_repo, "SN-1")
        given_back = await seed_device(device_repo, "SN-2")
        await engine.assign(STAFF, kept.id, Holder(name="Alice"))
        await engine.assign(STAFF, given_back.id, Holder(name="Bob"))
        await engine.return_device(STAFF, given_back.id, "left company")

        active = await views.list_active()
        returned = await views.list_returned()
        everything = await views.list_all()

        assert [v.distribution.holder.name for v in active] == ["Alice"]
        assert active[0].device.id == kept.id
        assert [v.distribution.holder.name for v in returned] == ["Bob"]
        assert returned[0].device.serial_number == "SN-2"
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_returned_history_survives_device_deletion(self, engine, views, device_repo):
        device = await seed_device(device_repo, "SN-1")
        view = await engine.assign(STAFF, device.id, Holder(name="Alice"))
        await engine.return_device(STAFF, device.id)
        await engine.delete_device(CallerIdentity(user_id="a", role="admin"), device.id)

        history = await views.get_distribution(view.distribution.id)
        returned = await views.list_returned()

        assert history.device is None
        assert history.distribution.returned_flag is True
        assert returned[0].device is None

    @pytest.mark.asyncio
    async def test_get_unknown_distribution(self, views):
        with pytest.raises(NotFoundError):
            await views.get_distribution(uuid4())


class TestDeviceViews:
    """Tests for the device reads."""

    @pytest.mark.asyncio
    async def test_get_device_joins_active_distribution(self, engine, views, device_repo):
        device = await seed_device(device_repo, "SN-1")
        await engine.assign(STAFF, device.id, Holder(name="Alice", phone="555-0100"))

        view = await views.get_device(device.id)

        assert view.device.assigned is True
        assert view.distribution.holder.phone == "555-0100"

    @pytest.mark.asyncio
    async def test_get_available_device(self, views, device_repo):
        device = await seed_device(device_repo, "SN-1")

        view = await views.get_device(device.id)

        assert view.distribution is None
        assert view.device.assigned is False

    @pytest.mark.asyncio
    async def test_get_unknown_device(self, views):
        with pytest.raises(NotFoundError):
            await views.get_device(uuid4())

    @pytest.mark.asyncio
    async def test_list_devices_in_creation_order(self, views, device_repo):
        await seed_device(device_repo, "SN-1")
        await seed_device(device_repo, "SN-2")

        listed = await views.list_devices()

        assert [v.device.serial_number for v in listed] == ["SN-1", "SN-2"]
