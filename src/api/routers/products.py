"""Product endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_business_service, get_current_subject
from schemas.product import ProductCreate, ProductRead, ProductUpdate
from services.business_logic_service import BusinessLogicService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: str,
    service: BusinessLogicService = Depends(get_business_service),
) -> ProductRead:
    """Get a product. No authentication required."""
    return await service.get_product(product_id)


@router.post("/", response_model=ProductRead, status_code=201)
async def create_product(
    data: ProductCreate,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> ProductRead:
    """Create a product (admin only)."""
    result = await service.create_product(subject_id, data)
    return result.product


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: str,
    data: ProductUpdate,
    subject_id: str = Depends(get_current_subject),
    service: BusinessLogicService = Depends(get_business_service),
) -> ProductRead:
    """Update a product (admin only). Only fields that are set are written."""
    result = await service.update_product(subject_id, product_id, data)
    return result.product
