from __future__ import annotations

"""SQLAlchemy ORM model for the key/value provider.

One table holds every key of every store; ``expires_at`` is an epoch-seconds
float so expiry comparisons behave the same on Postgres and SQLite.

Table names are prefixed with ``cv_`` to avoid collisions in shared databases.
"""

from typing import Optional

from sqlalchemy import Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class KeyValueRow(Base):
    """Row model for ``cv_kv_entries``."""

    __tablename__ = "cv_kv_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
