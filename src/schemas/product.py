"""Pydantic schemas for product documents."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class ProductCreate(BaseModel):
    """
    Schema for creating a product.

    Fields are nullable on purpose: presence and range rules are business rules
    checked by the service, which reports them as ValidationError with the field name.
    """

    name: str | None = None
    description: str | None = None
    category: str | None = None
    price: Decimal | None = None
    quantity_available: int | None = None
    image_url: str | None = None


class ProductUpdate(BaseModel):
    """Schema for partial product updates. Only fields that are set are written."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    price: Decimal | None = None
    quantity_available: int | None = None
    image_url: str | None = None
    active: bool | None = None
    featured: bool | None = None


class ProductRead(BaseModel):
    """Product as stored in the system of record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    category: str
    price: Decimal
    quantity_available: int
    image_url: str | None = None
    active: bool
    featured: bool
    rating: float
    review_count: int
    created_at: datetime
    updated_at: datetime
