"""PostgreSQL adapter for distribution repository.

This adapter implements IDistributionRepository using asyncpg.
Inserts rely on the partial unique index ``uq_distributions_active_device``;
a violation is converted to ConflictError by ``database_connection``.
Returns are a single ``UPDATE ... WHERE returned_at IS NULL``.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

import asyncpg

from ...common.database import database_connection
from ..domain.entities import Distribution, DistributionState, Holder, ReturnRecord
from ..domain.ports import IDistributionRepository

logger = logging.getLogger(__name__)

DISTRIBUTION_COLUMNS = """
    id, device_id, holder_name, holder_email, holder_phone, holder_position,
    assigned_at, returned_at, returned_reason, created_at, updated_at
"""

STATE_FILTERS = {
    None: "",
    DistributionState.ACTIVE: "WHERE returned_at IS NULL",
    DistributionState.RETURNED: "WHERE returned_at IS NOT NULL",
}


class PostgresDistributionRepository(IDistributionRepository):
    """PostgreSQL implementation of IDistributionRepository."""

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with database connection pool.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create(self, distribution: Distribution) -> Distribution:
        holder = distribution.holder
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO distributions (
                    id, device_id, holder_name, holder_email, holder_phone,
                    holder_position, assigned_at, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {DISTRIBUTION_COLUMNS}
                """,
                distribution.id,
                distribution.device_id,
                holder.name,
                holder.email,
                holder.phone,
                holder.position,
                distribution.assigned_at,
                distribution.created_at,
                distribution.updated_at,
            )
        return self._row_to_distribution(row)

    async def get(self, distribution_id: UUID) -> Optional[Distribution]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {DISTRIBUTION_COLUMNS} FROM distributions WHERE id = $1",
                distribution_id,
            )
        return self._row_to_distribution(row) if row else None

    async def find_active_by_device(self, device_id: UUID) -> Optional[Distribution]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {DISTRIBUTION_COLUMNS}
                FROM distributions
                WHERE device_id = $1 AND returned_at IS NULL
                """,
                device_id,
            )
        return self._row_to_distribution(row) if row else None

    async def list_by_state(self, state: Optional[DistributionState] = None) -> list[Distribution]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {DISTRIBUTION_COLUMNS}
                FROM distributions
                {STATE_FILTERS[state]}
                ORDER BY assigned_at, id
                """
            )
        return [self._row_to_distribution(row) for row in rows]

    async def mark_returned(
        self,
        distribution_id: UUID,
        returned_at: datetime,
        reason: str,
    ) -> Optional[Distribution]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE distributions
                SET returned_at = $2, returned_reason = $3, updated_at = now()
                WHERE id = $1 AND returned_at IS NULL
                RETURNING {DISTRIBUTION_COLUMNS}
                """,
                distribution_id,
                returned_at,
                reason,
            )
        return self._row_to_distribution(row) if row else None

    async def delete_active(self, distribution_id: UUID) -> bool:
        async with database_connection(self.pool) as conn:
            deleted = await conn.fetchval(
                """
                DELETE FROM distributions
                WHERE id = $1 AND returned_at IS NULL
                RETURNING id
                """,
                distribution_id,
            )
        return deleted is not None

    def _row_to_distribution(self, row: asyncpg.Record) -> Distribution:
        """Convert database row to Distribution."""
        returned = None
        if row["returned_at"] is not None:
            returned = ReturnRecord(
                returned_at=row["returned_at"],
                reason=row["returned_reason"],
            )

        return Distribution(
            id=row["id"],
            device_id=row["device_id"],
            holder=Holder(
                name=row["holder_name"],
                email=row["holder_email"],
                phone=row["holder_phone"],
                position=row["holder_position"],
            ),
            assigned_at=row["assigned_at"],
            returned=returned,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
