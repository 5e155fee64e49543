"""
Key-Value Records — SQLAlchemy model backing the SQL storage backend.

Every governance store (policy, installed modules, audit ledger) is one
named record holding a JSON document. The table knows nothing about the
documents' shapes; stores validate them on read.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for FinanceOS storage models."""
    pass


class KeyValueRecordDB(Base):
    """A single named JSON record, replaced wholesale on every save."""

    __tablename__ = "kv_records"

    key = Column(
        String(200), primary_key=True,
        comment="Record name, e.g. financeos.policy.v1",
    )
    value = Column(
        Text, nullable=False,
        comment="JSON-encoded document",
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False,
        default=func.now(), onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<KeyValueRecord key={self.key} bytes={len(self.value or '')}>"
