"""
Key-Value Storage — the persistence boundary of the governance core.

Stores load a full JSON document, mutate it, and save it back. The
backend only moves text; it never interprets the documents.

Two backends are provided:
- InMemoryKeyValueStore — dict-backed, for tests and ephemeral runtimes
- SqlKeyValueStore      — SQLAlchemy table, any database SQLAlchemy supports

There is no transaction isolation across a load/save pair: the last
writer wins.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from financeos.exceptions import StorageError
from financeos.storage.models import Base, KeyValueRecordDB

logger = logging.getLogger(__name__)

POLICY_KEY = "financeos.policy.v1"
INSTALLED_MODULES_KEY = "financeos.installedModules.v1"
AUDIT_KEY = "financeos.audit.v1"

__all__ = [
    "AUDIT_KEY",
    "INSTALLED_MODULES_KEY",
    "POLICY_KEY",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
    "StorageError",
]


@runtime_checkable
class KeyValueStore(Protocol):
    """Synchronous text key-value store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store. Values are kept as the exact strings written."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._records: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._records.get(key)

    def set(self, key: str, value: str) -> None:
        self._records[key] = value

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._records)


class SqlKeyValueStore:
    """
    SQLAlchemy-backed store — one row per record in ``kv_records``.

    Usage:
        store = SqlKeyValueStore("sqlite:///financeos.db")
        store.initialize()  # Create tables
        store.set("financeos.policy.v1", '{"autonomyMode": "auto"}')

    Backend failures are raised as StorageError so callers can tell a
    missing record (None) from an unreadable one.
    """

    def __init__(self, database_url: str) -> None:
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the record table if it does not exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Key-value storage initialized: %s", self.engine.url.drivername)

    def get(self, key: str) -> str | None:
        try:
            with self.SessionLocal() as session:
                return session.execute(
                    select(KeyValueRecordDB.value).where(KeyValueRecordDB.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(key, "read", str(exc)) from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self.SessionLocal() as session:
                record = session.get(KeyValueRecordDB, key)
                if record is None:
                    session.add(KeyValueRecordDB(key=key, value=value))
                else:
                    record.value = value
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(key, "write", str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            with self.SessionLocal() as session:
                session.execute(
                    delete(KeyValueRecordDB).where(KeyValueRecordDB.key == key)
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(key, "delete", str(exc)) from exc
