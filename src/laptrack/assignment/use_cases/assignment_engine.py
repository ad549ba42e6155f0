"""Assignment Engine use case.

Coordinates the two stores when a laptop is assigned, returned or deleted.
There is no transaction spanning both tables, so the write order matters:

- assign: create the distribution first. The partial unique index on
  active distributions is the only thing that decides a race between two
  assigns; the device pointer is written afterwards, best effort.
- return: a conditional update (``returned_at IS NULL``) on the
  distribution decides a race between two returns; the device pointer is
  cleared afterwards, best effort.

If the second write is lost, the system is left with a stale device cache
that ``DeviceCacheReconciler`` repairs on the next operation or read.

Expected callers: assign/return need an elevated role (admin, it_staff),
delete needs admin. The engine logs the caller but checks nothing; the
HTTP layer enforces roles.
"""

import logging
from typing import Callable, Optional
from uuid import UUID

from ...common.exceptions import (
    AlreadyAssignedError,
    AlreadyReturnedError,
    ConflictError,
    NotDistributedError,
    NotFoundError,
)
from ..domain.entities import (
    CallerIdentity,
    DeleteResult,
    Device,
    DeviceView,
    Distribution,
    Holder,
    ReturnResult,
    utcnow,
)
from ..domain.ports import IDeviceRepository, IDistributionRepository
from .reconcile import DeviceCacheReconciler

logger = logging.getLogger(__name__)


class AssignmentEngine:
    """Stateless state machine over the device and distribution stores."""

    def __init__(
        self,
        device_repo: IDeviceRepository,
        distribution_repo: IDistributionRepository,
        clock: Callable = utcnow,
    ):
        """Initialize the engine.

        Args:
            device_repo: Store for devices (holds the cached pointer)
            distribution_repo: Store for distributions (source of truth)
            clock: Returns the current aware datetime
        """
        self.devices = device_repo
        self.distributions = distribution_repo
        self.reconciler = DeviceCacheReconciler(device_repo, distribution_repo)
        self._clock = clock

    async def _require_device(self, device_id: UUID) -> Device:
        device = await self.devices.get(device_id)
        if device is None:
            raise NotFoundError("laptop", device_id, "Laptop not found")
        return device

    async def assign(
        self,
        caller: CallerIdentity,
        device_id: UUID,
        holder: Holder,
    ) -> DeviceView:
        """Distribute a laptop to a holder.

        Raises:
            NotFoundError: If the laptop does not exist
            AlreadyAssignedError: If it has a genuinely active distribution
            ConflictError: If a concurrent assign won the race at the store
        """
        device = await self._require_device(device_id)
        device, active = await self.reconciler.reconcile(device)
        if active is not None:
            raise AlreadyAssignedError(
                device.id,
                holder_name=active.holder.name,
                holder_email=active.holder.email,
                distribution_id=active.id,
            )

        distribution = Distribution(
            device_id=device.id,
            holder=holder,
            assigned_at=self._clock(),
        )
        # Validates the transition before anything is written
        device.assigned_to(distribution.id)

        try:
            distribution = await self.distributions.create(distribution)
        except ConflictError as e:
            logger.warning(
                f"Concurrent assignment of laptop {device.id} rejected by the store "
                f"(caller={caller.user_id})"
            )
            winner = await self.distributions.find_active_by_device(device.id)
            if winner is not None:
                await self.reconciler.heal(device, winner)
                e.details["holder_name"] = winner.holder.name
                e.details["holder_email"] = winner.holder.email
            raise

        device = await self.reconciler.write_pointer(device, distribution.id)

        logger.info(
            f"Laptop {device.id} distributed to {holder.name} "
            f"(distribution={distribution.id}, caller={caller.user_id}, role={caller.role})"
        )
        return DeviceView(device=device, distribution=distribution)

    async def return_device(
        self,
        caller: CallerIdentity,
        device_id: UUID,
        reason: Optional[str] = None,
    ) -> ReturnResult:
        """Return a laptop, resolving its active distribution through the device.

        Raises:
            NotFoundError: If the laptop does not exist
            NotDistributedError: If it has no active distribution
            AlreadyReturnedError: If a concurrent return got there first
        """
        device = await self._require_device(device_id)
        device, active = await self.reconciler.reconcile(device)
        if active is None:
            raise NotDistributedError(device.id)

        returned = await self._mark_returned(active, reason)
        device.released()
        device = await self.reconciler.write_pointer(device, None)

        logger.info(
            f"Laptop {device.id} returned from {returned.holder.name} "
            f"(distribution={returned.id}, caller={caller.user_id}, role={caller.role})"
        )
        return ReturnResult(distribution=returned, device=device)

    async def return_distribution(
        self,
        caller: CallerIdentity,
        distribution_id: UUID,
        reason: Optional[str] = None,
    ) -> ReturnResult:
        """Return a laptop by its distribution id.

        Raises:
            NotFoundError: If the distribution does not exist
            AlreadyReturnedError: If it is already returned
        """
        distribution = await self.distributions.get(distribution_id)
        if distribution is None:
            raise NotFoundError("distribution", distribution_id, "Distribution record not found")
        if not distribution.is_active:
            raise AlreadyReturnedError(distribution.id)

        returned = await self._mark_returned(distribution, reason)

        device = await self.devices.get(returned.device_id)
        if device is None:
            logger.warning(
                f"Laptop {returned.device_id} not found for returned distribution {returned.id}"
            )
        elif device.current_distribution_id == returned.id:
            device = await self.reconciler.write_pointer(device.released(), None)
        else:
            # Pointer was already stale; let the reconciler settle it
            device, _ = await self.reconciler.reconcile(device)

        logger.info(
            f"Distribution {returned.id} returned "
            f"(caller={caller.user_id}, role={caller.role})"
        )
        return ReturnResult(distribution=returned, device=device)

    async def _mark_returned(
        self,
        distribution: Distribution,
        reason: Optional[str],
    ) -> Distribution:
        """Apply the terminal transition through the store's conditional update."""
        terminal = distribution.mark_returned(self._clock(), reason)
        returned = await self.distributions.mark_returned(
            distribution.id,
            terminal.returned_at,
            terminal.returned_reason,
        )
        if returned is not None:
            return returned

        if await self.distributions.get(distribution.id) is None:
            raise NotFoundError("distribution", distribution.id, "Distribution record not found")
        logger.warning(f"Distribution {distribution.id} was returned concurrently")
        raise AlreadyReturnedError(distribution.id)

    async def delete_device(self, caller: CallerIdentity, device_id: UUID) -> DeleteResult:
        """Delete a laptop and its active distribution.

        Returned distributions are kept as history even though their
        laptop reference now dangles.

        Raises:
            NotFoundError: If the laptop does not exist
        """
        device = await self._require_device(device_id)

        deleted_distribution_id = None
        if device.current_distribution_id is not None:
            if await self.distributions.delete_active(device.current_distribution_id):
                deleted_distribution_id = device.current_distribution_id

        deleted = await self.devices.delete(device.id)
        if deleted is None:
            raise NotFoundError("laptop", device_id, "Laptop not found")

        # Catches an orphan left by a lost pointer write or a racing assign
        orphan = await self.distributions.find_active_by_device(device.id)
        if orphan is not None and await self.distributions.delete_active(orphan.id):
            logger.warning(f"Deleted orphaned active distribution {orphan.id} of laptop {device.id}")
            deleted_distribution_id = orphan.id

        logger.info(
            f"Laptop {device.id} deleted "
            f"(distribution={deleted_distribution_id}, caller={caller.user_id}, role={caller.role})"
        )
        return DeleteResult(device=deleted, deleted_distribution_id=deleted_distribution_id)
