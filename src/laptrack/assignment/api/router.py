"""FastAPI routers for laptop and distribution endpoints.

Role requirements:
- Any authenticated caller: all GET endpoints
- admin / it_staff: create, update, distribute, return
- admin only: delete

Domain errors propagate as LaptrackError and are rendered by the
application's exception handler.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends

from ...common.exceptions import ValidationError
from ..domain.entities import CallerIdentity, Holder
from ..use_cases import AssignmentEngine, DeviceInventoryUseCase, ReadViews
from .auth import get_caller, require_admin, require_elevated
from .dependencies import get_assignment_engine, get_inventory, get_read_views
from .schemas import (
    CreateDistributionRequest,
    CreateLaptopRequest,
    DeleteLaptopResponse,
    DistributeRequest,
    DistributeResponse,
    DistributionViewDTO,
    HolderFields,
    LaptopDTO,
    LaptopViewDTO,
    ReturnDistributionRequest,
    ReturnLaptopRequest,
    ReturnResponse,
    distribution_to_dto,
    distribution_view_to_dto,
    laptop_to_dto,
    laptop_view_to_dto,
)

logger = logging.getLogger(__name__)

laptops_router = APIRouter(prefix="/api/laptops", tags=["Laptops"])
distributions_router = APIRouter(prefix="/api/distributions", tags=["Distributions"])


def _holder(request: HolderFields) -> Holder:
    return Holder(
        name=request.holder_name,
        email=request.holder_email,
        phone=request.holder_phone,
        position=request.holder_position,
    )


# ========== Laptops ==========


@laptops_router.post("", response_model=LaptopDTO, status_code=201)
async def create_laptop(
    request: CreateLaptopRequest,
    inventory: DeviceInventoryUseCase = Depends(get_inventory),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Register a new laptop. Serial numbers are unique."""
    device = await inventory.create_device(
        caller,
        name=request.name,
        serial_number=request.serial_number,
        model=request.model,
        price=request.price,
        origin=request.origin,
    )
    return laptop_to_dto(device)


@laptops_router.get("", response_model=list[LaptopViewDTO])
async def list_laptops(
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    """List all laptops with their active distribution."""
    return [laptop_view_to_dto(v) for v in await views.list_devices()]


@laptops_router.post("/distribute", response_model=DistributeResponse)
async def distribute_laptop(
    request: DistributeRequest,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Distribute a laptop to a person.

    Fails with 400 if the laptop is already distributed; the message
    names the current holder.
    """
    holder = _holder(request)
    if holder.position is None:
        raise ValidationError("holder_position is required", field="holder_position")
    view = await engine.assign(caller, request.laptop_id, holder)
    return DistributeResponse(laptop=laptop_view_to_dto(view))


@laptops_router.post("/return", response_model=ReturnResponse)
async def return_laptop(
    request: ReturnLaptopRequest,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Return a laptop from its current holder."""
    result = await engine.return_device(caller, request.laptop_id, request.returned_reason)
    return ReturnResponse(
        laptop=laptop_to_dto(result.device) if result.device else None,
        returned_distribution=distribution_to_dto(result.distribution),
    )


@laptops_router.get("/{laptop_id}", response_model=LaptopViewDTO)
async def get_laptop(
    laptop_id: UUID,
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    return laptop_view_to_dto(await views.get_device(laptop_id))


@laptops_router.put("/{laptop_id}", response_model=LaptopViewDTO)
async def update_laptop(
    laptop_id: UUID,
    changes: dict[str, Any] = Body(...),
    inventory: DeviceInventoryUseCase = Depends(get_inventory),
    views: ReadViews = Depends(get_read_views),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Update descriptive fields. Assignment fields are rejected."""
    await inventory.update_device(caller, laptop_id, changes)
    return laptop_view_to_dto(await views.get_device(laptop_id))


@laptops_router.delete("/{laptop_id}", response_model=DeleteLaptopResponse)
async def delete_laptop(
    laptop_id: UUID,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    caller: CallerIdentity = Depends(require_admin),
):
    """Delete a laptop together with its active distribution."""
    result = await engine.delete_device(caller, laptop_id)
    return DeleteLaptopResponse(
        laptop_id=result.device.id,
        deleted_distribution_id=result.deleted_distribution_id,
    )


# ========== Distributions ==========


@distributions_router.get("", response_model=list[DistributionViewDTO])
async def list_distributions(
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    return [distribution_view_to_dto(v) for v in await views.list_all()]


@distributions_router.get("/active", response_model=list[DistributionViewDTO])
async def list_active_distributions(
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    return [distribution_view_to_dto(v) for v in await views.list_active()]


@distributions_router.get("/returned", response_model=list[DistributionViewDTO])
async def list_returned_distributions(
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    return [distribution_view_to_dto(v) for v in await views.list_returned()]


@distributions_router.get("/{distribution_id}", response_model=DistributionViewDTO)
async def get_distribution(
    distribution_id: UUID,
    views: ReadViews = Depends(get_read_views),
    _caller: CallerIdentity = Depends(get_caller),
):
    return distribution_view_to_dto(await views.get_distribution(distribution_id))


@distributions_router.post("", response_model=LaptopViewDTO, status_code=201)
async def create_distribution(
    request: CreateDistributionRequest,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Open a distribution record for a laptop (same rules as distribute)."""
    view = await engine.assign(caller, request.laptop_id, _holder(request))
    return laptop_view_to_dto(view)


@distributions_router.put("/{distribution_id}/return", response_model=ReturnResponse)
async def return_distribution(
    distribution_id: UUID,
    request: Optional[ReturnDistributionRequest] = None,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    caller: CallerIdentity = Depends(require_elevated),
):
    """Return the laptop held under a distribution record."""
    reason = request.returned_reason if request else None
    result = await engine.return_distribution(caller, distribution_id, reason)
    return ReturnResponse(
        laptop=laptop_to_dto(result.device) if result.device else None,
        returned_distribution=distribution_to_dto(result.distribution),
    )
