"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..domain.entities import (
    Device,
    DeviceView,
    Distribution,
    DistributionView,
    Origin,
)


# ========== Requests ==========


class CreateLaptopRequest(BaseModel):
    """Request to register a laptop."""

    name: str
    serial_number: str
    model: str
    price: Decimal = Field(..., ge=0)
    origin: Origin


class HolderFields(BaseModel):
    """Contact fields of the person receiving a laptop."""

    holder_name: str
    holder_email: Optional[str] = None
    holder_phone: Optional[str] = None
    holder_position: Optional[str] = None


class DistributeRequest(HolderFields):
    """Request to distribute a laptop. Position is required on this route."""

    laptop_id: UUID
    holder_position: str


class CreateDistributionRequest(HolderFields):
    """Request to open a distribution record directly."""

    laptop_id: UUID


class ReturnLaptopRequest(BaseModel):
    """Request to return a laptop by its id."""

    laptop_id: UUID
    returned_reason: Optional[str] = None


class ReturnDistributionRequest(BaseModel):
    """Request body for returning a distribution by its id."""

    returned_reason: Optional[str] = None


# ========== Responses ==========


class DistributionDTO(BaseModel):
    """A distribution record."""

    id: UUID
    laptop_id: UUID
    holder_name: str
    holder_email: Optional[str] = None
    holder_phone: Optional[str] = None
    holder_position: Optional[str] = None
    assigned_at: datetime
    returned_at: Optional[datetime] = None
    returned_reason: Optional[str] = None
    returned_flag: bool = False
    state: str
    created_at: datetime
    updated_at: datetime


class LaptopDTO(BaseModel):
    """A laptop and its cached assignment state."""

    id: UUID
    name: str
    serial_number: str
    model: str
    price: Decimal
    origin: Origin
    assigned: bool
    current_distribution_id: Optional[UUID] = None
    state: str
    created_at: datetime
    updated_at: datetime


class LaptopViewDTO(LaptopDTO):
    """A laptop joined with its active distribution."""

    distribution: Optional[DistributionDTO] = None


class DistributionViewDTO(DistributionDTO):
    """A distribution joined with its laptop (null once the laptop is deleted)."""

    laptop: Optional[LaptopDTO] = None


class DistributeResponse(BaseModel):
    message: str = "Laptop distributed successfully!"
    laptop: LaptopViewDTO


class ReturnResponse(BaseModel):
    message: str = "Laptop returned successfully!"
    laptop: Optional[LaptopDTO] = None
    returned_distribution: DistributionDTO


class DeleteLaptopResponse(BaseModel):
    message: str = "Laptop deleted successfully"
    laptop_id: UUID
    deleted_distribution_id: Optional[UUID] = None


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


# ========== Converters ==========


def distribution_to_dto(distribution: Distribution) -> DistributionDTO:
    holder = distribution.holder
    return DistributionDTO(
        id=distribution.id,
        laptop_id=distribution.device_id,
        holder_name=holder.name,
        holder_email=holder.email,
        holder_phone=holder.phone,
        holder_position=holder.position,
        assigned_at=distribution.assigned_at,
        returned_at=distribution.returned_at,
        returned_reason=distribution.returned_reason,
        returned_flag=distribution.returned_flag,
        state=distribution.state.value,
        created_at=distribution.created_at,
        updated_at=distribution.updated_at,
    )


def _laptop_fields(device: Device) -> dict[str, Any]:
    return dict(
        id=device.id,
        name=device.name,
        serial_number=device.serial_number,
        model=device.model,
        price=device.price,
        origin=device.origin,
        assigned=device.assigned,
        current_distribution_id=device.current_distribution_id,
        state=device.state.value,
        created_at=device.created_at,
        updated_at=device.updated_at,
    )


def laptop_to_dto(device: Device) -> LaptopDTO:
    return LaptopDTO(**_laptop_fields(device))


def laptop_view_to_dto(view: DeviceView) -> LaptopViewDTO:
    return LaptopViewDTO(
        **_laptop_fields(view.device),
        distribution=distribution_to_dto(view.distribution) if view.distribution else None,
    )


def distribution_view_to_dto(view: DistributionView) -> DistributionViewDTO:
    return DistributionViewDTO(
        **distribution_to_dto(view.distribution).model_dump(),
        laptop=laptop_to_dto(view.device) if view.device else None,
    )
