"""In-memory adapters for the device and distribution repositories.

Used for local development (STORAGE_BACKEND=memory) and tests. They
enforce the same constraints as the PostgreSQL schema: a unique serial
number per device and at most one active distribution per device.

Each operation yields to the event loop once before touching state, so
concurrent callers interleave the way they would against a real store.
The check and the write that follow happen without another await, which
makes them atomic with respect to other tasks.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from ...common.exceptions import ConflictError
from ..domain.entities import (
    Device,
    Distribution,
    DistributionState,
    ReturnRecord,
    utcnow,
)
from ..domain.ports import IDeviceRepository, IDistributionRepository

SERIAL_CONSTRAINT = "devices_serial_number_key"
ACTIVE_CONSTRAINT = "uq_distributions_active_device"


class InMemoryDeviceRepository(IDeviceRepository):
    """Dictionary-backed IDeviceRepository."""

    def __init__(self):
        self._devices: dict[UUID, Device] = {}

    def _serial_taken(self, serial_number: str, exclude: Optional[UUID] = None) -> bool:
        return any(
            d.serial_number == serial_number and d.id != exclude
            for d in self._devices.values()
        )

    async def create(self, device: Device) -> Device:
        await asyncio.sleep(0)
        if self._serial_taken(device.serial_number):
            raise ConflictError(
                f"Serial number {device.serial_number} already exists",
                constraint=SERIAL_CONSTRAINT,
            )
        self._devices[device.id] = replace(device)
        return replace(device)

    async def get(self, device_id: UUID) -> Optional[Device]:
        await asyncio.sleep(0)
        device = self._devices.get(device_id)
        return replace(device) if device else None

    async def list_all(self) -> list[Device]:
        await asyncio.sleep(0)
        devices = sorted(self._devices.values(), key=lambda d: d.created_at)
        return [replace(d) for d in devices]

    async def update_fields(self, device_id: UUID, changes: dict[str, Any]) -> Optional[Device]:
        await asyncio.sleep(0)
        device = self._devices.get(device_id)
        if device is None:
            return None
        serial = changes.get("serial_number")
        if serial is not None and self._serial_taken(serial, exclude=device_id):
            raise ConflictError(
                f"Serial number {serial} already exists",
                constraint=SERIAL_CONSTRAINT,
            )
        updated = replace(device, **changes, updated_at=utcnow())
        self._devices[device_id] = updated
        return replace(updated)

    async def set_current_distribution(
        self,
        device_id: UUID,
        distribution_id: Optional[UUID],
    ) -> Optional[Device]:
        await asyncio.sleep(0)
        device = self._devices.get(device_id)
        if device is None:
            return None
        updated = replace(device, current_distribution_id=distribution_id, updated_at=utcnow())
        self._devices[device_id] = updated
        return replace(updated)

    async def delete(self, device_id: UUID) -> Optional[Device]:
        await asyncio.sleep(0)
        device = self._devices.pop(device_id, None)
        return replace(device) if device else None


class InMemoryDistributionRepository(IDistributionRepository):
    """Dictionary-backed IDistributionRepository with a partial unique constraint."""

    def __init__(self):
        self._distributions: dict[UUID, Distribution] = {}

    def _active_for(self, device_id: UUID) -> Optional[Distribution]:
        for distribution in self._distributions.values():
            if distribution.device_id == device_id and distribution.is_active:
                return distribution
        return None

    async def create(self, distribution: Distribution) -> Distribution:
        await asyncio.sleep(0)
        if distribution.is_active and self._active_for(distribution.device_id) is not None:
            raise ConflictError(
                "This laptop is already part of an active distribution record",
                constraint=ACTIVE_CONSTRAINT,
                details={"device_id": str(distribution.device_id)},
            )
        self._distributions[distribution.id] = replace(distribution)
        return replace(distribution)

    async def get(self, distribution_id: UUID) -> Optional[Distribution]:
        await asyncio.sleep(0)
        distribution = self._distributions.get(distribution_id)
        return replace(distribution) if distribution else None

    async def find_active_by_device(self, device_id: UUID) -> Optional[Distribution]:
        await asyncio.sleep(0)
        distribution = self._active_for(device_id)
        return replace(distribution) if distribution else None

    async def list_by_state(self, state: Optional[DistributionState] = None) -> list[Distribution]:
        await asyncio.sleep(0)
        distributions = sorted(self._distributions.values(), key=lambda d: d.assigned_at)
        return [replace(d) for d in distributions if state is None or d.state == state]

    async def mark_returned(
        self,
        distribution_id: UUID,
        returned_at: datetime,
        reason: str,
    ) -> Optional[Distribution]:
        await asyncio.sleep(0)
        distribution = self._distributions.get(distribution_id)
        if distribution is None or not distribution.is_active:
            return None
        updated = replace(
            distribution,
            returned=ReturnRecord(returned_at=returned_at, reason=reason),
            updated_at=utcnow(),
        )
        self._distributions[distribution_id] = updated
        return replace(updated)

    async def delete_active(self, distribution_id: UUID) -> bool:
        await asyncio.sleep(0)
        distribution = self._distributions.get(distribution_id)
        if distribution is None or not distribution.is_active:
            return False
        del self._distributions[distribution_id]
        return True
