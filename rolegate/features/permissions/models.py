"""
Storage table for permission documents.

Each matrix and the custom role list is one JSON document, keyed by name
(see ``ResourceKind.document_key``). Writes replace the whole document.
"""
from typing import Any
from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from rolegate.core.database.base import Base, TimestampMixin


class PermissionDocument(Base, TimestampMixin):
    __tablename__ = "permission_documents"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<PermissionDocument(key={self.key!r})>"
