"""Port interfaces for laptop assignment.

These are abstract interfaces (ports) that define how the domain
interacts with storage. Concrete implementations (adapters) are
provided in the adapters module.

The ports are deliberately narrow: create, read, conditional update
and delete. Whatever backs them must enforce two constraints itself,
because the engine relies on them for correctness under concurrency:

- devices are unique on ``serial_number``
- at most one distribution per device has ``returned_at IS NULL``

This follows the Hexagonal Architecture pattern.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from .entities import Device, Distribution, DistributionState


class IDeviceRepository(ABC):
    """Port for device data access.

    Implementations might use PostgreSQL, in-memory storage, etc.
    """

    @abstractmethod
    async def create(self, device: Device) -> Device:
        """Insert a new device.

        Raises:
            ConflictError: If the serial number is already taken
        """
        ...

    @abstractmethod
    async def get(self, device_id: UUID) -> Optional[Device]:
        """Find a device by id."""
        ...

    @abstractmethod
    async def list_all(self) -> list[Device]:
        """Return every device, oldest first."""
        ...

    @abstractmethod
    async def update_fields(self, device_id: UUID, changes: dict[str, Any]) -> Optional[Device]:
        """Update non-assignment fields.

        Args:
            device_id: Device UUID
            changes: Subset of name, serial_number, model, price, origin

        Returns:
            The updated device, or None if it does not exist

        Raises:
            ConflictError: If the new serial number is already taken
        """
        ...

    @abstractmethod
    async def set_current_distribution(
        self,
        device_id: UUID,
        distribution_id: Optional[UUID],
    ) -> Optional[Device]:
        """Write the cached pointer (None clears it).

        Returns:
            The updated device, or None if it does not exist
        """
        ...

    @abstractmethod
    async def delete(self, device_id: UUID) -> Optional[Device]:
        """Delete a device.

        Returns:
            The deleted device, or None if it did not exist
        """
        ...


class IDistributionRepository(ABC):
    """Port for distribution data access."""

    @abstractmethod
    async def create(self, distribution: Distribution) -> Distribution:
        """Insert a new active distribution.

        Raises:
            ConflictError: If the device already has an active distribution
        """
        ...

    @abstractmethod
    async def get(self, distribution_id: UUID) -> Optional[Distribution]:
        """Find a distribution by id."""
        ...

    @abstractmethod
    async def find_active_by_device(self, device_id: UUID) -> Optional[Distribution]:
        """Find the active distribution for a device, if any."""
        ...

    @abstractmethod
    async def list_by_state(self, state: Optional[DistributionState] = None) -> list[Distribution]:
        """List distributions, optionally filtered by state, oldest first."""
        ...

    @abstractmethod
    async def mark_returned(
        self,
        distribution_id: UUID,
        returned_at: datetime,
        reason: str,
    ) -> Optional[Distribution]:
        """Conditionally return a distribution.

        The write only applies if ``returned_at`` is still null at write time.

        Returns:
            The terminal distribution, or None if it does not exist or
            was already returned
        """
        ...

    @abstractmethod
    async def delete_active(self, distribution_id: UUID) -> bool:
        """Delete a distribution only while it is still active.

        Returns:
            True if a row was deleted
        """
        ...
