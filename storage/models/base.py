"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Declarative base for the fleet tables plus the audit
timestamp mixin shared by machines and commands.

Column types stay portable (JSON, String ids) so the same
schema runs on PostgreSQL and SQLite.

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Every datetime column is timezone-aware."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    created_at / updated_at columns.

    The service writes both from its injected clock; there are
    no server defaults, so a MockClock controls them in tests.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the row was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last service write (UTC)",
    )
