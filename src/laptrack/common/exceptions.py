#!/usr/bin/env python3
"""Exception Hierarchy for the Laptop Fleet Assignment Service.

This module provides a structured exception hierarchy for the errors the
assignment engine, its stores and the HTTP layer can raise.

Design Principles:
    - All exceptions inherit from LaptrackError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Each exception carries the HTTP status it maps to

Exception Hierarchy:
    LaptrackError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── NotFoundError (404)
    ├── ValidationError (400)
    ├── AssignmentError (400 - precondition failures)
    │   ├── AlreadyAssignedError
    │   ├── AlreadyReturnedError
    │   └── NotDistributedError
    ├── ConflictError (400 - store uniqueness violation, caller may retry)
    ├── InvalidTransitionError (500 - state machine misuse)
    └── DatabaseError (500, may be recoverable)
        ├── ConnectionPoolError
        └── TransactionError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class LaptrackError(Exception):
    """Base exception for all service errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "ALREADY_ASSIGNED")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
        status_code: HTTP status the error maps to
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(LaptrackError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Lookup and Input Errors
# ============================================

class NotFoundError(LaptrackError):
    """Raised when a device or distribution id does not resolve."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["resource_type"] = resource_type
        details["resource_id"] = str(resource_id)
        super().__init__(
            message or f"{resource_type.capitalize()} not found",
            code="NOT_FOUND",
            details=details,
            **kwargs,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(LaptrackError):
    """Raised for missing or malformed fields (bad email, bad origin, ...)."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            **kwargs,
        )
        self.field = field


# ============================================
# Assignment Precondition Errors
# ============================================

class AssignmentError(LaptrackError):
    """Base class for assignment state precondition failures."""

    status_code = 400


class AlreadyAssignedError(AssignmentError):
    """Raised when a device already has a genuinely active distribution.

    Attributes:
        holder_name: Name of the current holder
        holder_email: Email of the current holder, if recorded
    """

    def __init__(
        self,
        device_id: Any,
        holder_name: str,
        holder_email: Optional[str] = None,
        distribution_id: Any = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["device_id"] = str(device_id)
        details["holder_name"] = holder_name
        details["holder_email"] = holder_email
        if distribution_id is not None:
            details["distribution_id"] = str(distribution_id)
        super().__init__(
            f"Laptop is already distributed to {holder_name} ({holder_email or 'no email'})",
            code="ALREADY_ASSIGNED",
            details=details,
            **kwargs,
        )
        self.holder_name = holder_name
        self.holder_email = holder_email


class AlreadyReturnedError(AssignmentError):
    """Raised when a distribution was already returned (possibly concurrently)."""

    def __init__(self, distribution_id: Any, **kwargs):
        details = kwargs.pop("details", {})
        details["distribution_id"] = str(distribution_id)
        super().__init__(
            "Distribution has already been returned",
            code="ALREADY_RETURNED",
            details=details,
            **kwargs,
        )


class NotDistributedError(AssignmentError):
    """Raised when returning a device that has no active distribution."""

    def __init__(self, device_id: Any, **kwargs):
        details = kwargs.pop("details", {})
        details["device_id"] = str(device_id)
        super().__init__(
            "Laptop is not currently distributed",
            code="NOT_DISTRIBUTED",
            details=details,
            **kwargs,
        )


# ============================================
# Store Conflicts
# ============================================

class ConflictError(LaptrackError):
    """Raised when a store uniqueness constraint rejects a write.

    This is how concurrent assignments for one device are decided: the
    loser sees a ConflictError and is expected to retry.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Conflicting write rejected by the store",
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if constraint:
            details["constraint"] = constraint
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="CONFLICT",
            details=details,
            **kwargs,
        )
        self.constraint = constraint


class InvalidTransitionError(LaptrackError):
    """Raised when the state machine is asked for an illegal transition."""

    def __init__(self, entity: str, state: str, event: str, **kwargs):
        super().__init__(
            f"Cannot apply '{event}' to {entity} in state '{state}'",
            code="INVALID_TRANSITION",
            details={"entity": entity, "state": state, "event": event},
            **kwargs,
        )


# ============================================
# Database Errors
# ============================================

class DatabaseError(LaptrackError):
    """Base class for database-related errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool is exhausted or unavailable."""

    def __init__(
        self,
        message: str = "Database connection pool error",
        **kwargs,
    ):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class TransactionError(DatabaseError):
    """Raised when a database transaction or statement fails."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(
            message,
            code="TRANSACTION_ERROR",
            details=details,
            **kwargs,
        )
