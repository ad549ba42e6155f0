"""Read views joining devices with distributions.

Device reads are self-healing: a device whose cached pointer disagrees
with the distribution store is corrected before it is returned. The
distribution listings are plain joins with no side effects.
"""

import logging
from typing import Optional
from uuid import UUID

from ...common.exceptions import NotFoundError
from ..domain.entities import (
    Device,
    DeviceView,
    Distribution,
    DistributionState,
    DistributionView,
)
from ..domain.ports import IDeviceRepository, IDistributionRepository
from .reconcile import DeviceCacheReconciler

logger = logging.getLogger(__name__)


class ReadViews:
    """Read-only projections over the two stores."""

    def __init__(
        self,
        device_repo: IDeviceRepository,
        distribution_repo: IDistributionRepository,
    ):
        self.devices = device_repo
        self.distributions = distribution_repo
        self.reconciler = DeviceCacheReconciler(device_repo, distribution_repo)

    async def get_device(self, device_id: UUID) -> DeviceView:
        """Get a device with its active distribution.

        Raises:
            NotFoundError: If the laptop does not exist
        """
        device = await self.devices.get(device_id)
        if device is None:
            raise NotFoundError("laptop", device_id, "Laptop not found")
        device, active = await self.reconciler.reconcile(device)
        return DeviceView(device=device, distribution=active)

    async def list_devices(self) -> list[DeviceView]:
        """List every device with its active distribution.

        Uses one query per store and heals only the devices that disagree.
        """
        devices = await self.devices.list_all()
        active = await self.distributions.list_by_state(DistributionState.ACTIVE)
        active_by_device = {d.device_id: d for d in active}

        views = []
        healed = 0
        for device in devices:
            current = active_by_device.get(device.id)
            target = current.id if current else None
            if device.current_distribution_id != target:
                device = await self.reconciler.heal(device, current)
                healed += 1
            views.append(DeviceView(device=device, distribution=current))

        if healed:
            logger.info(f"Healed {healed} stale device pointer(s) while listing laptops")
        return views

    async def list_active(self) -> list[DistributionView]:
        return await self._join(
            await self.distributions.list_by_state(DistributionState.ACTIVE)
        )

    async def list_returned(self) -> list[DistributionView]:
        return await self._join(
            await self.distributions.list_by_state(DistributionState.RETURNED)
        )

    async def list_all(self) -> list[DistributionView]:
        return await self._join(await self.distributions.list_by_state())

    async def get_distribution(self, distribution_id: UUID) -> DistributionView:
        """Get one distribution joined with its device.

        Raises:
            NotFoundError: If the distribution does not exist
        """
        distribution = await self.distributions.get(distribution_id)
        if distribution is None:
            raise NotFoundError("distribution", distribution_id, "Distribution record not found")
        device = await self.devices.get(distribution.device_id)
        return DistributionView(distribution=distribution, device=device)

    async def _join(self, distributions: list[Distribution]) -> list[DistributionView]:
        devices: dict[UUID, Optional[Device]] = {
            d.id: d for d in await self.devices.list_all()
        }
        return [
            DistributionView(distribution=d, device=devices.get(d.device_id))
            for d in distributions
        ]
