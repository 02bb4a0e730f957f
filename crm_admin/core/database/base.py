"""
SQLAlchemy declarative base and common model utilities.

All entity models inherit from Base. The in-memory store uses the same
classes as plain objects, so services set ids and timestamps explicitly
instead of relying on column defaults.
"""
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from crm_admin.core.timeutils import utcnow


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    SQLite drops tzinfo on the way back; values are re-attached to UTC on load
    so aware and naive datetimes never get compared.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Models may declare:
        __search_fields__: columns matched by the repository ``search`` filter
        __order_by__: columns used to order ``list`` results in SQL stores
    """
    __search_fields__ = ("name",)
    __order_by__ = ("id",)


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    Repositories refresh updated_at on every update.
    """
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )
