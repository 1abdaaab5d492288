"""Order endpoints."""
from datetime import timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import (
    get_business_service,
    get_current_subject,
    get_current_token,
    get_session_validator,
    get_settings,
)
from core.config import Settings
from schemas.order import OrderCreate, OrderRead, OrderStatusUpdate
from schemas.token import TokenMetadata
from services.business_logic_service import BusinessLogicService
from services.session_validator import SessionValidator

router = APIRouter(prefix="/orders", tags=["orders"])


class SideEffectResponse(BaseModel):
    """Outcome of one post-commit side effect."""

    name: str
    succeeded: bool
    error: str | None = None


class OrderPlacedResponse(BaseModel):
    """A placed order and the outcome of its side effects."""

    order: OrderRead
    side_effects: list[SideEffectResponse]


@router.post("/", response_model=OrderPlacedResponse, status_code=201)
async def place_order(
    data: OrderCreate,
    token: TokenMetadata = Depends(get_current_token),
    service: BusinessLogicService = Depends(get_business_service),
    validator: SessionValidator = Depends(get_session_validator),
    settings: Settings = Depends(get_settings),
) -> OrderPlacedResponse:
    """
    Place an order.

    The order is committed even when the confirmation or search sync fails; those
    outcomes are reported in `side_effects`.
    """
    validator.check_token_freshness(token, timedelta(seconds=settings.session_max_age))
    result = await service.process_order(token.subject_id, data)
    return OrderPlacedResponse(
        order=result.order,
        side_effects=[
            SideEffectResponse(
                name=outcome.name,
                succeeded=outcome.succeeded,
                error=str(outcome.error) if outcome.error else None,
            )
            for outcome in result.side_effects
        ],
    )


@router.get("/", response_model=list[OrderRead])
async def list_orders(
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> list[OrderRead]:
    """List the subject's own orders, newest first."""
    return await service.list_orders(subject_id)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> OrderRead:
    """Get an order (owner or admin)."""
    return await service.get_order(subject_id, order_id)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> OrderRead:
    """Move an order to a new status (staff roles only)."""
    return await service.update_order_status(subject_id, order_id, data.status)
