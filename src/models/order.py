"""Order model."""
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DocumentIdMixin, TimestampMixin


class Order(Base, DocumentIdMixin, TimestampMixin):
    """An order placed at checkout. Items and shipping are stored as documents."""

    __tablename__ = "orders"

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="processing")
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    shipping: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
