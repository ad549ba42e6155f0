"""API layer for laptop assignment.

Contains:
- FastAPI routers for laptops and distributions
- JWT caller resolution and role checks
- Pydantic schemas for request/response validation
"""

from .router import distributions_router, laptops_router
from .schemas import (
    DistributionDTO,
    DistributionViewDTO,
    ErrorResponse,
    LaptopDTO,
    LaptopViewDTO,
)

__all__ = [
    "laptops_router",
    "distributions_router",
    "LaptopDTO",
    "LaptopViewDTO",
    "DistributionDTO",
    "DistributionViewDTO",
    "ErrorResponse",
]
