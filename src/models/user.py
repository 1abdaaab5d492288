"""User model mirrored from the identity system of record."""
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """User document - role and account flags drive every permission check."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Identity provider 'sub' claim",
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), default="customer", nullable=False)
    suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deactivated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
