"""FastAPI dependency injection for the laptop API.

This module provides dependency injection functions that create
and return adapter and use case instances for use in API endpoints.

Lifecycle Management:
- Database pool: Initialized at startup, shared across requests
- In-memory stores: Created at startup when STORAGE_BACKEND=memory
- Both are released at application shutdown

Use cases are stateless, so a new one is built per request around the
shared repositories.
"""

import logging
import os
from typing import Optional

import asyncpg
from fastapi import Depends

from ...common.database import close_pool, create_pool
from ...common.exceptions import ConfigurationError
from ..adapters import (
    InMemoryDeviceRepository,
    InMemoryDistributionRepository,
    PostgresDeviceRepository,
    PostgresDistributionRepository,
    apply_schema,
)
from ..domain.ports import IDeviceRepository, IDistributionRepository
from ..use_cases import AssignmentEngine, DeviceInventoryUseCase, ReadViews

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("postgres", "memory")


# ========== Global State ==========

# Global connection pool (initialized on startup)
_db_pool: Optional[asyncpg.Pool] = None

# In-memory stores (initialized on startup for STORAGE_BACKEND=memory)
_memory_devices: Optional[InMemoryDeviceRepository] = None
_memory_distributions: Optional[InMemoryDistributionRepository] = None


def get_storage_backend() -> str:
    """Read STORAGE_BACKEND, defaulting to postgres.

    Raises:
        ConfigurationError: If the value is not a known backend
    """
    backend = os.getenv("STORAGE_BACKEND", "postgres").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ConfigurationError(
            f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got '{backend}'"
        )
    return backend


async def init_db_pool():
    """Initialize the database connection pool and make sure the schema exists.

    Should be called on application startup.
    """
    global _db_pool

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigurationError(
            "DATABASE_URL environment variable is required",
            missing_keys=["DATABASE_URL"],
        )

    _db_pool = await create_pool(
        database_url,
        min_size=int(os.getenv("DB_POOL_MIN_SIZE", "2")),
        max_size=int(os.getenv("DB_POOL_MAX_SIZE", "10")),
    )
    await apply_schema(_db_pool)


def init_memory_stores():
    """Create fresh in-memory stores."""
    global _memory_devices, _memory_distributions
    _memory_devices = InMemoryDeviceRepository()
    _memory_distributions = InMemoryDistributionRepository()
    logger.warning("Using in-memory storage; data is lost on restart")


async def init_storage():
    """Initialize whichever storage backend is configured.

    Should be called on application startup.
    """
    if get_storage_backend() == "memory":
        init_memory_stores()
    else:
        await init_db_pool()


async def close_storage():
    """Release the storage backend.

    Should be called on application shutdown.
    """
    global _db_pool, _memory_devices, _memory_distributions
    if _db_pool:
        await close_pool(_db_pool)
        _db_pool = None
    _memory_devices = None
    _memory_distributions = None


def get_db_pool() -> Optional[asyncpg.Pool]:
    """Get the database connection pool (None when running in memory)."""
    return _db_pool


def _require_pool() -> asyncpg.Pool:
    if _db_pool is None:
        raise RuntimeError("Database pool not initialized. Call init_storage() first.")
    return _db_pool


# ========== Dependency Functions ==========


def get_device_repo() -> IDeviceRepository:
    """Get a device repository instance."""
    if _memory_devices is not None:
        return _memory_devices
    return PostgresDeviceRepository(_require_pool())


def get_distribution_repo() -> IDistributionRepository:
    """Get a distribution repository instance."""
    if _memory_distributions is not None:
        return _memory_distributions
    return PostgresDistributionRepository(_require_pool())


def get_assignment_engine(
    device_repo: IDeviceRepository = Depends(get_device_repo),
    distribution_repo: IDistributionRepository = Depends(get_distribution_repo),
) -> AssignmentEngine:
    return AssignmentEngine(device_repo, distribution_repo)


def get_read_views(
    device_repo: IDeviceRepository = Depends(get_device_repo),
    distribution_repo: IDistributionRepository = Depends(get_distribution_repo),
) -> ReadViews:
    return ReadViews(device_repo, distribution_repo)


def get_inventory(
    device_repo: IDeviceRepository = Depends(get_device_repo),
) -> DeviceInventoryUseCase:
    return DeviceInventoryUseCase(device_repo)
