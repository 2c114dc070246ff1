"""
SQLAlchemy declarative base and shared column mixins.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for every rolegate table."""
    pass


class TimestampMixin:
    """
    Adds created_at/updated_at columns maintained by the database.

    Usage:
        class PermissionDocument(Base, TimestampMixin):
            __tablename__ = "permission_documents"
            key: Mapped[str] = mapped_column(String(100), primary_key=True)
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
