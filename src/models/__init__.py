"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.cart import Cart, Wishlist
from models.order import Order
from models.product import Product
from models.user import User

__all__ = [
    "Base",
    "Cart",
    "Order",
    "Product",
    "TimestampMixin",
    "User",
    "Wishlist",
]
