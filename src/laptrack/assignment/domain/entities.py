"""Domain entities for laptop assignment.

These are pure domain objects with no infrastructure dependencies.
A Device carries a cached pointer to its current Distribution; the
Distribution's own return record is the authoritative state.

States are explicit enums derived from the stored fields, so a record
can never claim ``assigned`` without a pointer, or ``returned_flag``
without a return date.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from ...common.exceptions import InvalidTransitionError, ValidationError

EMAIL_PATTERN = re.compile(r"^[\w-]+(\.[\w-]+)*@([\w-]+\.)+[a-zA-Z]{2,7}$")

DEFAULT_RETURN_REASON = "No reason provided"

PRICE_STEP = Decimal("0.01")
MAX_PRICE = Decimal(10) ** 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Origin(str, Enum):
    """How a laptop entered the fleet."""

    DONATION = "donation"
    PURCHASED = "purchased"


class Role(str, Enum):
    """Caller roles known to the service."""

    ADMIN = "admin"
    IT_STAFF = "it_staff"
    VIEWER = "viewer"


# Roles expected to call assign/return and inventory writes
ELEVATED_ROLES = frozenset({Role.ADMIN.value, Role.IT_STAFF.value})

# Roles expected to delete devices
DELETE_ROLES = frozenset({Role.ADMIN.value})


class DeviceState(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"


class DistributionState(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"


class DeviceEvent(str, Enum):
    ASSIGN = "assign"
    RELEASE = "release"


class DistributionEvent(str, Enum):
    RETURN = "return"


DEVICE_TRANSITIONS: dict[tuple[DeviceState, DeviceEvent], DeviceState] = {
    (DeviceState.AVAILABLE, DeviceEvent.ASSIGN): DeviceState.ASSIGNED,
    (DeviceState.ASSIGNED, DeviceEvent.RELEASE): DeviceState.AVAILABLE,
}

DISTRIBUTION_TRANSITIONS: dict[tuple[DistributionState, DistributionEvent], DistributionState] = {
    (DistributionState.ACTIVE, DistributionEvent.RETURN): DistributionState.RETURNED,
}


def next_device_state(state: DeviceState, event: DeviceEvent) -> DeviceState:
    """Look up a device transition, raising on illegal pairs."""
    try:
        return DEVICE_TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError("device", state.value, event.value) from None


def next_distribution_state(
    state: DistributionState, event: DistributionEvent
) -> DistributionState:
    """Look up a distribution transition, raising on illegal pairs."""
    try:
        return DISTRIBUTION_TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError("distribution", state.value, event.value) from None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field=field_name)
    return value.strip()


def parse_origin(value: Any) -> Origin:
    """Parse an origin value, rejecting anything outside the enum."""
    if isinstance(value, Origin):
        return value
    try:
        return Origin(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(o.value for o in Origin)
        raise ValidationError(f"origin must be one of: {allowed}", field="origin") from None


def parse_price(value: Any) -> Decimal:
    """Parse a non-negative decimal price."""
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("price must be a number", field="price") from None
    if not price.is_finite() or price < 0:
        raise ValidationError("price must be a non-negative number", field="price")
    # Stored as NUMERIC(12, 2)
    if price >= MAX_PRICE:
        raise ValidationError(f"price must be below {MAX_PRICE}", field="price")
    if price != price.quantize(PRICE_STEP):
        raise ValidationError("price must have at most 2 decimal places", field="price")
    return price


@dataclass(frozen=True)
class CallerIdentity:
    """An already-verified caller. The engine records it but never checks it."""

    user_id: str
    role: str

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id is required")
        if not self.role:
            raise ValueError("role is required")

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


@dataclass(frozen=True)
class Holder:
    """Contact data of the person a laptop is distributed to."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "name", require_text(self.name, "holder_name"))
        email = _clean(self.email)
        if email is not None:
            email = email.lower()
            if not EMAIL_PATTERN.match(email):
                raise ValidationError(
                    "Please fill a valid email address", field="holder_email"
                )
        object.__setattr__(self, "email", email)
        object.__setattr__(self, "phone", _clean(self.phone))
        object.__setattr__(self, "position", _clean(self.position))


@dataclass(frozen=True)
class ReturnRecord:
    """The terminal fields of a distribution, always set together."""

    returned_at: datetime
    reason: str = DEFAULT_RETURN_REASON


@dataclass
class Device:
    """A tracked laptop and its cached pointer to the active distribution."""

    name: str
    serial_number: str
    model: str
    price: Decimal
    origin: Origin
    id: UUID = field(default_factory=uuid4)
    current_distribution_id: Optional[UUID] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.name = require_text(self.name, "name")
        self.serial_number = require_text(self.serial_number, "serial_number")
        self.model = require_text(self.model, "model")
        self.price = parse_price(self.price)
        self.origin = parse_origin(self.origin)

    @property
    def state(self) -> DeviceState:
        if self.current_distribution_id is None:
            return DeviceState.AVAILABLE
        return DeviceState.ASSIGNED

    @property
    def assigned(self) -> bool:
        return self.state == DeviceState.ASSIGNED

    def assigned_to(self, distribution_id: UUID) -> "Device":
        """Return a copy pointing at ``distribution_id``."""
        next_device_state(self.state, DeviceEvent.ASSIGN)
        return replace(self, current_distribution_id=distribution_id, updated_at=utcnow())

    def released(self) -> "Device":
        """Return a copy with the pointer cleared."""
        next_device_state(self.state, DeviceEvent.RELEASE)
        return replace(self, current_distribution_id=None, updated_at=utcnow())


# Fields a generic inventory update may touch
DEVICE_EDITABLE_FIELDS = frozenset({"name", "serial_number", "model", "price", "origin"})

# Fields only the assignment engine may touch
DEVICE_ASSIGNMENT_FIELDS = frozenset({"assigned", "current_distribution_id"})


@dataclass
class Distribution:
    """One loan of a device to a holder."""

    device_id: UUID
    holder: Holder
    id: UUID = field(default_factory=uuid4)
    assigned_at: datetime = field(default_factory=utcnow)
    returned: Optional[ReturnRecord] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def state(self) -> DistributionState:
        if self.returned is None:
            return DistributionState.ACTIVE
        return DistributionState.RETURNED

    @property
    def is_active(self) -> bool:
        return self.state == DistributionState.ACTIVE

    @property
    def returned_at(self) -> Optional[datetime]:
        return self.returned.returned_at if self.returned else None

    @property
    def returned_reason(self) -> Optional[str]:
        return self.returned.reason if self.returned else None

    @property
    def returned_flag(self) -> bool:
        return self.returned is not None

    def mark_returned(self, returned_at: datetime, reason: Optional[str] = None) -> "Distribution":
        """Return a terminal copy. Raises if already returned."""
        next_distribution_state(self.state, DistributionEvent.RETURN)
        record = ReturnRecord(
            returned_at=returned_at,
            reason=_clean(reason) or DEFAULT_RETURN_REASON,
        )
        return replace(self, returned=record, updated_at=utcnow())


@dataclass
class DeviceView:
    """A device joined with its active distribution (None when available)."""

    device: Device
    distribution: Optional[Distribution] = None


@dataclass
class DistributionView:
    """A distribution joined with its device (None once the device is deleted)."""

    distribution: Distribution
    device: Optional[Device] = None


@dataclass
class ReturnResult:
    """Outcome of a return: the terminal distribution and the released device."""

    distribution: Distribution
    device: Optional[Device] = None


@dataclass
class DeleteResult:
    """Outcome of a device deletion."""

    device: Device
    deleted_distribution_id: Optional[UUID] = None
