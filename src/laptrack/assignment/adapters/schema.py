"""PostgreSQL schema for devices and distributions.

The partial unique index ``uq_distributions_active_device`` is what
decides concurrent assignments of the same laptop: only one row per
device may have ``returned_at IS NULL``.

``assigned`` and ``returned_flag`` are generated columns, so they can
never disagree with the pointer / return date they are derived from.
Distributions carry no foreign key to devices: returned history is kept
after its device is deleted.
"""

import logging

from ...common.database import database_transaction

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    serial_number TEXT NOT NULL,
    model TEXT NOT NULL,
    price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
    origin TEXT NOT NULL CHECK (origin IN ('donation', 'purchased')),
    current_distribution_id UUID NULL,
    assigned BOOLEAN GENERATED ALWAYS AS (current_distribution_id IS NOT NULL) STORED,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT devices_serial_number_key UNIQUE (serial_number)
);

CREATE TABLE IF NOT EXISTS distributions (
    id UUID PRIMARY KEY,
    device_id UUID NOT NULL,
    holder_name TEXT NOT NULL,
    holder_email TEXT NULL,
    holder_phone TEXT NULL,
    holder_position TEXT NULL,
    assigned_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    returned_at TIMESTAMPTZ NULL,
    returned_reason TEXT NULL,
    returned_flag BOOLEAN GENERATED ALWAYS AS (returned_at IS NOT NULL) STORED,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT distributions_return_fields_together
        CHECK ((returned_at IS NULL) = (returned_reason IS NULL))
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_distributions_active_device
    ON distributions (device_id)
    WHERE returned_at IS NULL;

CREATE INDEX IF NOT EXISTS idx_distributions_device_id
    ON distributions (device_id);
"""


async def apply_schema(pool) -> None:
    """Create tables and indexes if they do not exist yet."""
    async with database_transaction(pool) as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Database schema applied")
