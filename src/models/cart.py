"""Cart and wishlist documents, one per user."""
from typing import Any

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class Cart(Base, TimestampMixin):
    """
    A user's cart.

    `version` increases by one on every write; pushes carry it so consumers can
    drop snapshots older than what they already applied.
    """

    __tablename__ = "carts"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Wishlist(Base, TimestampMixin):
    """A user's wishlist."""

    __tablename__ = "wishlists"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
