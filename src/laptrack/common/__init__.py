"""Shared infrastructure for the laptop fleet service.

Modules:
    exceptions: LaptrackError hierarchy with HTTP status mapping
    database: asyncpg pool helpers, connection/transaction context managers
    error_sanitizer: Redaction of secrets from client-facing error messages
"""

from .exceptions import (
    AlreadyAssignedError,
    AlreadyReturnedError,
    ConfigurationError,
    ConflictError,
    ConnectionPoolError,
    DatabaseError,
    InvalidTransitionError,
    LaptrackError,
    NotDistributedError,
    NotFoundError,
    TransactionError,
    ValidationError,
)

__all__ = [
    "LaptrackError",
    "ConfigurationError",
    "NotFoundError",
    "ValidationError",
    "AlreadyAssignedError",
    "AlreadyReturnedError",
    "NotDistributedError",
    "ConflictError",
    "InvalidTransitionError",
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
]
