"""Cart endpoints for the authenticated subject."""
from fastapi import APIRouter, Depends

from api.dependencies import get_business_service, get_current_subject
from schemas.cart import CartItemAdd, CartItemUpdate, CartSnapshot
from services.business_logic_service import BusinessLogicService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=CartSnapshot)
async def get_cart(
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> CartSnapshot:
    """Get the subject's cart."""
    return await service.get_cart(subject_id)


@router.post("/items", response_model=CartSnapshot)
async def add_cart_item(
    data: CartItemAdd,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> CartSnapshot:
    """Add a product to the cart (quantity is added to an existing line)."""
    product = await service.get_product(data.product_id)
    return await service.add_to_cart(subject_id, product, data.quantity)


@router.patch("/items/{product_id}", response_model=CartSnapshot)
async def update_cart_item(
    product_id: str,
    data: CartItemUpdate,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> CartSnapshot:
    """Set a line's quantity. Zero or less removes the line."""
    return await service.update_cart_quantity(subject_id, product_id, data.quantity)


@router.delete("/items/{product_id}", response_model=CartSnapshot)
async def remove_cart_item(
    product_id: str,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> CartSnapshot:
    """Remove a line from the cart."""
    return await service.remove_from_cart(subject_id, product_id)


@router.delete("/", response_model=CartSnapshot)
async def clear_cart(
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> CartSnapshot:
    """Empty the cart."""
    return await service.clear_cart(subject_id)
