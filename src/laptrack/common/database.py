#!/usr/bin/env python3
"""Database Utilities for the Laptop Fleet Assignment Service.

This module provides database utilities including:
    - Connection and transaction context managers
    - Connection pool management
    - Conversion of driver errors into the service exception hierarchy

The assignment engine itself never spans a transaction across the device
and distribution tables; transactions are only used for schema bootstrap.

Example:
    async with database_connection(pool) as conn:
        row = await conn.fetchrow("SELECT * FROM devices WHERE id = $1", device_id)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .exceptions import (
    ConflictError,
    ConnectionPoolError,
    DatabaseError,
    LaptrackError,
    TransactionError,
)

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT_SECONDS = 30.0


# ============================================
# Connection Context Managers
# ============================================

@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """Acquire a pooled connection and convert driver errors on the way out.

    Args:
        pool: asyncpg connection pool

    Yields:
        Database connection

    Raises:
        ConnectionPoolError: If a connection cannot be acquired
        ConflictError: If a unique constraint rejected a write
        DatabaseError: For any other driver failure
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    try:
        conn = await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            "Timeout acquiring database connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT_SECONDS},
        )
    except Exception as e:
        raise ConnectionPoolError(
            f"Failed to acquire database connection: {e}",
            cause=e,
        )

    try:
        yield conn
    except LaptrackError:
        raise
    except Exception as e:
        raise convert_db_exception(e)
    finally:
        await pool.release(conn)


@asynccontextmanager
async def database_transaction(
    pool,
    isolation: str = "read_committed",
) -> AsyncIterator[Any]:
    """Context manager for a transaction with automatic commit/rollback.

    Args:
        pool: asyncpg connection pool
        isolation: Transaction isolation level

    Yields:
        Database connection within transaction
    """
    async with database_connection(pool) as conn:
        transaction = conn.transaction(isolation=isolation)
        try:
            await transaction.start()
        except Exception as e:
            raise TransactionError(f"Failed to start transaction: {e}", cause=e)

        try:
            yield conn
            await transaction.commit()
            logger.debug("Transaction committed successfully")
        except Exception:
            try:
                await transaction.rollback()
                logger.debug("Transaction rolled back due to exception")
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise


# ============================================
# Error Conversion
# ============================================

def convert_db_exception(e: Exception) -> LaptrackError:
    """Convert a driver exception to the matching service error.

    Unique violations become ConflictError: the partial unique index on
    active distributions and the serial number index both surface this way.
    """
    if isinstance(e, LaptrackError):
        return e

    if isinstance(e, asyncpg.exceptions.UniqueViolationError):
        constraint = getattr(e, "constraint_name", None)
        return ConflictError(
            f"Duplicate entry rejected by constraint {constraint or 'unique'}",
            constraint=constraint or "unique",
            cause=e,
        )

    error_str = str(e).lower()

    if "unique" in error_str or "duplicate" in error_str:
        return ConflictError(
            f"Duplicate entry: {e}",
            constraint="unique",
            cause=e,
        )

    if "deadlock" in error_str:
        return TransactionError(
            f"Deadlock detected: {e}",
            operation="transaction",
            cause=e,
        )

    if "timeout" in error_str or "timed out" in error_str:
        return TransactionError(
            f"Database operation timed out: {e}",
            operation="query",
            cause=e,
        )

    return DatabaseError(
        f"Database operation failed: {e}",
        cause=e,
    )


# ============================================
# Connection Pool Helpers
# ============================================

async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
) -> asyncpg.Pool:
    """Create a database connection pool with error handling.

    Raises:
        ConnectionPoolError: If pool creation fails
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except Exception as e:
        raise ConnectionPoolError(
            f"Failed to create database pool: {e}",
            cause=e,
        )
    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    """Close database pool gracefully."""
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
        logger.info("Database pool closed")
    except asyncio.TimeoutError:
        logger.warning(f"Pool close timed out after {timeout}s, terminating")
        pool.terminate()
    except Exception as e:
        logger.error(f"Error closing pool: {e}")
        pool.terminate()


# ============================================
# Health Check
# ============================================

async def check_database_health(pool) -> dict[str, Any]:
    """Check database connection health.

    Returns:
        Dict with health status information
    """
    if pool is None:
        return {
            "healthy": False,
            "error": "Pool not initialized",
        }

    try:
        async with database_connection(pool) as conn:
            result = await conn.fetchval("SELECT 1")
            pool_size = pool.get_size()
            pool_free = pool.get_idle_size()

            return {
                "healthy": result == 1,
                "pool_size": pool_size,
                "pool_free": pool_free,
                "pool_used": pool_size - pool_free,
            }

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "healthy": False,
            "error": str(e),
        }
