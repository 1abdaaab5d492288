"""Pydantic schemas for cart and wishlist documents."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CartItem(BaseModel):
    """
    A product line in a cart.

    Extra product fields (image_url, category, ...) are kept as a snapshot of the
    product at the time it was added.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: Decimal
    quantity: int = Field(gt=0)

    @classmethod
    def from_product(cls, product: "BaseModel | dict[str, Any]", quantity: int) -> "CartItem":
        """Snapshot a product (schema or plain mapping) into a cart line."""
        if isinstance(product, BaseModel):
            data = product.model_dump(mode="json")
        else:
            data = dict(product)
        for volatile in ("quantity", "quantity_available", "created_at", "updated_at"):
            data.pop(volatile, None)
        return cls(**data, quantity=quantity)


class CartSnapshot(BaseModel):
    """Authoritative cart state as returned by a write or delivered by a push."""

    items: list[CartItem] = Field(default_factory=list)
    version: int = 0
    updated_at: datetime | None = None


class WishlistItem(BaseModel):
    """A saved product in a wishlist."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: Decimal

    @classmethod
    def from_product(cls, product: "BaseModel | dict[str, Any]") -> "WishlistItem":
        """Snapshot a product into a wishlist entry."""
        if isinstance(product, BaseModel):
            data = product.model_dump(mode="json")
        else:
            data = dict(product)
        for volatile in ("quantity", "quantity_available", "created_at", "updated_at"):
            data.pop(volatile, None)
        return cls(**data)


class WishlistSnapshot(BaseModel):
    """Authoritative wishlist state."""

    items: list[WishlistItem] = Field(default_factory=list)
    version: int = 0
    updated_at: datetime | None = None


class CartItemAdd(BaseModel):
    """Request body for adding a product to the cart."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(BaseModel):
    """Request body for changing a cart line quantity. Zero or less removes the line."""

    quantity: int
