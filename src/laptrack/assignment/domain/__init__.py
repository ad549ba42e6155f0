"""Domain layer for laptop assignment.

Contains:
- Entities: Devices, distributions and their explicit states
- Ports: Interface definitions for storage adapters
"""

from .entities import (
    DELETE_ROLES,
    ELEVATED_ROLES,
    CallerIdentity,
    DeleteResult,
    Device,
    DeviceState,
    DeviceView,
    Distribution,
    DistributionState,
    DistributionView,
    Holder,
    Origin,
    ReturnRecord,
    ReturnResult,
    Role,
)
from .ports import IDeviceRepository, IDistributionRepository

__all__ = [
    # Entities
    "CallerIdentity",
    "DeleteResult",
    "Device",
    "DeviceState",
    "DeviceView",
    "Distribution",
    "DistributionState",
    "DistributionView",
    "Holder",
    "Origin",
    "ReturnRecord",
    "ReturnResult",
    "Role",
    "ELEVATED_ROLES",
    "DELETE_ROLES",
    # Ports
    "IDeviceRepository",
    "IDistributionRepository",
]
