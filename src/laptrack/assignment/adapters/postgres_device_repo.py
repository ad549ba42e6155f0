"""PostgreSQL adapter for device repository.

This adapter implements IDeviceRepository using asyncpg
to query the devices table.
"""

import logging
from typing import Any, Optional
from uuid import UUID

import asyncpg

from ...common.database import database_connection
from ..domain.entities import DEVICE_EDITABLE_FIELDS, Device
from ..domain.ports import IDeviceRepository

logger = logging.getLogger(__name__)

DEVICE_COLUMNS = """
    id, name, serial_number, model, price, origin,
    current_distribution_id, created_at, updated_at
"""


class PostgresDeviceRepository(IDeviceRepository):
    """PostgreSQL implementation of IDeviceRepository."""

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with database connection pool.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create(self, device: Device) -> Device:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO devices (
                    id, name, serial_number, model, price, origin,
                    current_distribution_id, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {DEVICE_COLUMNS}
                """,
                device.id,
                device.name,
                device.serial_number,
                device.model,
                device.price,
                device.origin.value,
                device.current_distribution_id,
                device.created_at,
                device.updated_at,
            )
        return self._row_to_device(row)

    async def get(self, device_id: UUID) -> Optional[Device]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {DEVICE_COLUMNS} FROM devices WHERE id = $1",
                device_id,
            )
        return self._row_to_device(row) if row else None

    async def list_all(self) -> list[Device]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"SELECT {DEVICE_COLUMNS} FROM devices ORDER BY created_at, id"
            )
        return [self._row_to_device(row) for row in rows]

    async def update_fields(self, device_id: UUID, changes: dict[str, Any]) -> Optional[Device]:
        """Update non-assignment columns.

        Column names come from a fixed allow-list, never from the caller.
        """
        columns = [name for name in changes if name in DEVICE_EDITABLE_FIELDS]
        if not columns:
            return await self.get(device_id)

        assignments = ", ".join(f"{name} = ${i + 2}" for i, name in enumerate(columns))
        values = [
            changes[name].value if name == "origin" else changes[name]
            for name in columns
        ]

        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE devices
                SET {assignments}, updated_at = now()
                WHERE id = $1
                RETURNING {DEVICE_COLUMNS}
                """,
                device_id,
                *values,
            )
        return self._row_to_device(row) if row else None

    async def set_current_distribution(
        self,
        device_id: UUID,
        distribution_id: Optional[UUID],
    ) -> Optional[Device]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE devices
                SET current_distribution_id = $2, updated_at = now()
                WHERE id = $1
                RETURNING {DEVICE_COLUMNS}
                """,
                device_id,
                distribution_id,
            )
        return self._row_to_device(row) if row else None

    async def delete(self, device_id: UUID) -> Optional[Device]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"DELETE FROM devices WHERE id = $1 RETURNING {DEVICE_COLUMNS}",
                device_id,
            )
        return self._row_to_device(row) if row else None

    def _row_to_device(self, row: asyncpg.Record) -> Device:
        """Convert database row to Device."""
        return Device(
            id=row["id"],
            name=row["name"],
            serial_number=row["serial_number"],
            model=row["model"],
            price=row["price"],
            origin=row["origin"],
            current_distribution_id=row["current_distribution_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
