"""Use cases for laptop assignment.

Each use case represents a single user action and orchestrates
domain logic without knowing about infrastructure details.
"""

from .assignment_engine import AssignmentEngine
from .inventory import DeviceInventoryUseCase
from .read_views import ReadViews
from .reconcile import DeviceCacheReconciler

__all__ = [
    "AssignmentEngine",
    "DeviceCacheReconciler",
    "DeviceInventoryUseCase",
    "ReadViews",
]
