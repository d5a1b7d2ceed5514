"""Declarative base and shared mixins for featuregraph models."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all featuregraph ORM models."""


class UUIDPrimaryKeyMixin:
    """Adds a client-generated UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )


class TimestampMixin:
    """Adds created_at/updated_at audit columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def enum_values(enum_cls: Any) -> list[str]:
    """Persist enum values (not member names) so partial indexes can match them."""
    return [member.value for member in enum_cls]


def generate_repr(obj: Any, *fields: str) -> str:
    """Build a compact ``__repr__`` from selected attributes."""
    parts = ", ".join(f"{name}={getattr(obj, name, None)!r}" for name in fields)
    return f"<{obj.__class__.__name__}({parts})>"


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)
