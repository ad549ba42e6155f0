"""Self-healing of the device's cached distribution pointer.

The distribution store is the source of truth for "is this laptop held";
``Device.current_distribution_id`` is only a cache of it. Every engine
operation and every device read goes through ``reconcile`` before it trusts
the cache, which closes the window left by a failed or abandoned second
write (orphaned active distribution, or a pointer to a returned one).
"""

import logging
from dataclasses import replace
from typing import Optional
from uuid import UUID

from ..domain.entities import Device, Distribution, utcnow
from ..domain.ports import IDeviceRepository, IDistributionRepository

logger = logging.getLogger(__name__)


class DeviceCacheReconciler:
    """Compares a device's pointer with the authoritative distribution state."""

    def __init__(
        self,
        device_repo: IDeviceRepository,
        distribution_repo: IDistributionRepository,
    ):
        self.devices = device_repo
        self.distributions = distribution_repo

    async def reconcile(self, device: Device) -> tuple[Device, Optional[Distribution]]:
        """Verify the pointer and correct it if it is stale.

        Returns:
            The (possibly healed) device and its active distribution, if any
        """
        pointer = device.current_distribution_id
        if pointer is not None:
            current = await self.distributions.get(pointer)
            if current is not None and current.is_active and current.device_id == device.id:
                return device, current
            logger.warning(
                f"Device {device.id} points at distribution {pointer} which is "
                f"{'missing' if current is None else 'no longer active'}"
            )

        active = await self.distributions.find_active_by_device(device.id)
        return await self.heal(device, active), active

    async def heal(self, device: Device, active: Optional[Distribution]) -> Device:
        """Make the pointer agree with ``active``, writing only when they differ."""
        target = active.id if active else None
        if device.current_distribution_id == target:
            return device
        logger.warning(
            f"Healing stale cache on device {device.id}: "
            f"{device.current_distribution_id} -> {target}"
        )
        return await self.write_pointer(device, target)

    async def write_pointer(self, device: Device, distribution_id: Optional[UUID]) -> Device:
        """Best-effort write of the cached pointer.

        A failure here is logged and swallowed: the authoritative write has
        already happened, and the next reconcile repairs the cache.
        """
        try:
            updated = await self.devices.set_current_distribution(device.id, distribution_id)
        except Exception as e:
            logger.error(
                f"Failed to update cached pointer on device {device.id} "
                f"to {distribution_id}: {e}"
            )
            return replace(device, current_distribution_id=distribution_id, updated_at=utcnow())

        if updated is None:
            logger.warning(f"Device {device.id} disappeared before its pointer was written")
            return replace(device, current_distribution_id=distribution_id, updated_at=utcnow())
        return updated
