"""
SQLAlchemy Models

Defines the database schema for the persistent config store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Float, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ConfigEntry(Base):
    """
    One config store value.

    ``expires_at`` is a UNIX timestamp; NULL means the entry never expires.
    """
    __tablename__ = "config_entry"

    key: Mapped[str] = mapped_column(String(191), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    expires_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ConfigEntry(key={self.key!r}, expires_at={self.expires_at})>"
