"""Pydantic schemas for orders."""
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(StrEnum):
    """Order lifecycle states."""

    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Allowed status transitions (admin/staff updates only).
ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class OrderItemIn(BaseModel):
    """A requested order line: which product and how many."""

    id: str
    quantity: int


class ShippingInfo(BaseModel):
    """Shipping details. Only `address` is required by the order rules."""

    model_config = ConfigDict(extra="allow")

    address: str | None = None
    name: str | None = None
    city: str | None = None
    postal_code: str | None = None
    phone: str | None = None


class OrderCreate(BaseModel):
    """Checkout request. Shape rules are checked by the service."""

    items: list[OrderItemIn] = Field(default_factory=list)
    shipping: ShippingInfo | None = None


class OrderLine(BaseModel):
    """An order line with the product fields captured at checkout."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: Decimal
    quantity: int


class OrderRead(BaseModel):
    """Order as stored in the system of record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    order_number: str
    status: OrderStatus
    items: list[OrderLine]
    shipping: dict
    subtotal: Decimal
    tax: Decimal
    shipping_fee: Decimal
    total: Decimal
    created_at: datetime


class OrderStatusUpdate(BaseModel):
    """Request body for an order status transition."""

    status: OrderStatus
