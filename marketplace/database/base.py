"""
SQLAlchemy declarative base and common model mixins.

This module provides the SQLAlchemy DeclarativeBase, mixins for UUID primary
keys and timestamps, and a small serialization helper shared by all models.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    """Timezone-aware current UTC time used for all persisted timestamps."""
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models with async support.

    Provides async attribute loading and a dictionary conversion helper.
    """

    __abstract__ = True

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Args:
            exclude: Set of attribute names to exclude from output

        Returns:
            Dictionary representation of the model
        """
        exclude = exclude or set()
        result = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[column.name] = str(value)
            else:
                result[column.name] = value

        return result

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.name, None)
            if value is not None:
                pk_values.append(f"{column.name}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "no primary key"
        return f"<{self.__class__.__name__}({pk_str})>"


class TimestampMixin:
    """
    Mixin for created/updated timestamps.

    Values are set application-side so they are available immediately after
    a flush; the server default covers rows written outside the ORM.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow,
            comment="Timestamp when record was last updated",
        )


class UUIDMixin:
    """
    Mixin for UUID primary key.

    The UUID is the storage-internal key; every cross-reference between
    entities uses the human-facing custom code instead.
    """

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False,
            comment="Unique identifier for the record",
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base model with UUID primary key and timestamps.

    Example:
        class Product(BaseModel):
            __tablename__ = "products"

            product_id: Mapped[str] = mapped_column(String(16), unique=True)
    """

    __abstract__ = True
