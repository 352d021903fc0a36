"""
Mixins and column helpers shared by the models.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SQLEnum, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from lms.core.timeutils import utc_now


class UUIDMixin:
    """UUID primary key."""
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """Creation and last-update timestamps (UTC)."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )


def enum_type(enum_cls: type[enum.Enum], name: str) -> SQLEnum:
    """String-backed enum column storing member values."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
