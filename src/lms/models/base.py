"""
Base SQLAlchemy models and common utilities for the e-learning core.
"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

# Naming convention for constraints and indexes
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to a naive datetime.

    SQLite drops tzinfo on round-trip; every timestamp in this system is UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Provides common metadata and utilities.
    """

    metadata = metadata

    # Type annotation for better IDE support
    __tablename__: str


class TimestampMixin:
    """
    Mixin for models that need created_at and updated_at timestamps.

    Usage:
        class MyModel(Base, TimestampMixin):
            ...
    """

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


class ApiModel(BaseModel):
    """
    Pydantic base for read models.

    Fields are snake_case in Python and camelCase on the wire
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]
