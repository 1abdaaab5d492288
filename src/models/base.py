"""SQLAlchemy declarative base with common mixins."""
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current wall-clock time, timezone-aware."""
    return datetime.now(UTC)


def new_document_id() -> str:
    """Generate a document id (random, no central sequencer)."""
    return uuid4().hex


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at columns.

    All timestamps are timezone-aware. Values are set client-side so the same models
    work against PostgreSQL and SQLite; writers that bump updated_at do so explicitly.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        index=True,
    )


class DocumentIdMixin:
    """String primary key shaped like a document id."""

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_document_id)
