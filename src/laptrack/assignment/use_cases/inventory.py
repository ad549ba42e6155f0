"""Inventory use cases: creating laptops and editing their descriptive fields.

Assignment state is never touched here; ``assigned`` and
``current_distribution_id`` belong to the AssignmentEngine.
"""

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from ...common.exceptions import NotFoundError, ValidationError
from ..domain.entities import (
    DEVICE_ASSIGNMENT_FIELDS,
    DEVICE_EDITABLE_FIELDS,
    CallerIdentity,
    Device,
    Origin,
    parse_origin,
    parse_price,
    require_text,
)
from ..domain.ports import IDeviceRepository

logger = logging.getLogger(__name__)

FIELD_PARSERS = {
    "name": require_text,
    "serial_number": require_text,
    "model": require_text,
    "price": lambda value, _field: parse_price(value),
    "origin": lambda value, _field: parse_origin(value),
}


class DeviceInventoryUseCase:
    """Creates devices and updates their non-assignment fields."""

    def __init__(self, device_repo: IDeviceRepository):
        self.devices = device_repo

    async def create_device(
        self,
        caller: CallerIdentity,
        name: str,
        serial_number: str,
        model: str,
        price: Decimal,
        origin: Origin | str,
    ) -> Device:
        """Register a new laptop.

        Raises:
            ValidationError: If a field is missing or malformed
            ConflictError: If the serial number is already taken
        """
        device = Device(
            name=name,
            serial_number=serial_number,
            model=model,
            price=price,
            origin=origin,
        )
        created = await self.devices.create(device)
        logger.info(
            f"Laptop {created.id} ({created.serial_number}) created "
            f"(caller={caller.user_id}, role={caller.role})"
        )
        return created

    async def update_device(
        self,
        caller: CallerIdentity,
        device_id: UUID,
        changes: dict[str, Any],
    ) -> Device:
        """Update descriptive fields of a laptop.

        Raises:
            ValidationError: On assignment fields, unknown fields or bad values
            NotFoundError: If the laptop does not exist
            ConflictError: If the new serial number is already taken
        """
        forbidden = sorted(set(changes) & DEVICE_ASSIGNMENT_FIELDS)
        if forbidden:
            raise ValidationError(
                "Assignment fields can only be changed by distributing or returning the laptop",
                field=forbidden[0],
            )
        unknown = sorted(set(changes) - DEVICE_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field: {unknown[0]}", field=unknown[0])

        parsed = {name: FIELD_PARSERS[name](value, name) for name, value in changes.items()}

        updated = await self.devices.update_fields(device_id, parsed)
        if updated is None:
            raise NotFoundError("laptop", device_id, "Laptop not found")

        logger.info(
            f"Laptop {device_id} updated ({', '.join(sorted(parsed)) or 'no changes'}) "
            f"(caller={caller.user_id}, role={caller.role})"
        )
        return updated
