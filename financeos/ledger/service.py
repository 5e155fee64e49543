"""
Audit Ledger Service — append-only record of governance events.

This service provides the core operations for the audit ledger:
- Append new entries (the only mutator in normal operation)
- List entries most-recent-first, optionally filtered
- Search and count entries
- Clear the ledger (explicit administrative reset only)

Two failure rules govern the ledger:
1. Reads are fail-soft — an unreadable record lists as empty and an
   entry that does not validate is skipped, so a read never blocks the
   action path.
2. Appends are fail-hard — an entry that cannot be persisted raises
   AuditLedgerError rather than being silently dropped, and existing
   entries are carried over as stored.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from financeos.events.bus import EventBus, Events
from financeos.exceptions import AuditLedgerError, StorageError
from financeos.governance.schema import AuditEntry, AuditLevel
from financeos.storage.kv import AUDIT_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class AuditLedger:
    """
    Audit Ledger — the accountability record of FinanceOS.

    Every governance decision and administrative change is appended here
    by the dispatcher, the policy store, and the permission registry.
    Entries are never mutated or removed individually.

    Usage:
        ledger = AuditLedger(store, bus)
        ledger.append(AuditEntry(
            level=AuditLevel.WARNING,
            title="Action denied",
            actor="Policy Engine",
            description="Kill switch is active.",
        ))
        latest = ledger.list(limit=10)
    """

    def __init__(self, store: KeyValueStore, bus: EventBus | None = None) -> None:
        """
        Initialize the ledger.

        Args:
            store: Key-value backend holding the ledger record.
            bus: Optional event bus; ``audit.appended`` is published on it.
        """
        self.store = store
        self.bus = bus

    def append(self, entry: AuditEntry) -> AuditEntry:
        """
        Append an entry to the ledger.

        The entry is visible to ``list()`` as soon as this returns, and an
        ``audit.appended`` event carrying it is published.

        Raises:
            AuditLedgerError: If the ledger cannot be read back or saved.
        """
        try:
            entries = self._load_for_write()
            entries.append(entry.to_record())
            self.store.set(AUDIT_KEY, json.dumps(entries))
        except StorageError as exc:
            logger.error("Audit entry could not be persisted: %s", exc)
            raise AuditLedgerError(
                f"Audit entry '{entry.title}' could not be persisted"
            ) from exc

        logger.info(
            "Audit entry appended: level=%s title=%s actor=%s",
            entry.level.value, entry.title, entry.actor,
        )

        if self.bus is not None:
            self.bus.publish(Events.AUDIT_APPENDED, entry)

        return entry

    def list(
        self,
        level: AuditLevel | None = None,
        module_id: str | None = None,
        actor: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """
        Return entries ordered by ``ts`` descending (most recent first).

        Args:
            level: Only entries at this level.
            module_id: Only entries attributed to this module.
            actor: Only entries recorded by this actor.
            limit: Maximum number of entries returned.
        """
        # Equal timestamps list the most recently appended first
        entries = sorted(reversed(self._load()), key=lambda e: e.ts, reverse=True)

        if level is not None:
            entries = [e for e in entries if e.level == level]
        if module_id is not None:
            entries = [e for e in entries if e.module_id == module_id]
        if actor is not None:
            entries = [e for e in entries if e.actor == actor]
        if limit is not None:
            entries = entries[:limit]

        return entries

    def search(self, text: str, limit: int = 50) -> list[AuditEntry]:
        """Case-insensitive search over entry titles and descriptions."""
        needle = text.lower()
        matches = [
            e for e in self.list()
            if needle in e.title.lower() or needle in (e.description or "").lower()
        ]
        return matches[:limit]

    def count(self) -> int:
        """Return the total number of entries in the ledger."""
        return len(self._load())

    def clear(self) -> None:
        """
        Remove every entry.

        This is an administrative reset, not part of normal operation.
        """
        self.store.set(AUDIT_KEY, json.dumps([]))
        logger.warning("Audit ledger cleared")

    # ── Internal ────────────────────────────────────────────────

    def _load(self) -> list[AuditEntry]:
        try:
            raw = self.store.get(AUDIT_KEY)
        except StorageError as exc:
            logger.warning("Audit ledger unreadable, listing as empty: %s", exc)
            return []

        records = _parse(raw)
        if records is None:
            logger.warning("Audit ledger record is corrupt, listing as empty")
            return []

        entries: list[AuditEntry] = []
        skipped = 0
        for record in records:
            try:
                entries.append(AuditEntry.model_validate(record))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped %d audit entries that failed validation", skipped)
        return entries

    def _load_for_write(self) -> list[Any]:
        """
        Return the stored records as raw JSON values.

        Existing records are kept as written, even ones this version
        cannot read, so an append never drops history. Only a record that
        is not JSON at all is replaced.

        Raises:
            StorageError: If the backend cannot be read.
            AuditLedgerError: If the record is JSON but not a list.
        """
        raw = self.store.get(AUDIT_KEY)
        if not raw:
            return []

        try:
            records = json.loads(raw)
        except ValueError:
            logger.warning("Audit ledger record is not JSON; starting a new ledger")
            return []

        if not isinstance(records, list):
            raise AuditLedgerError(
                "Audit ledger record is not a list; refusing to overwrite it"
            )
        return records


def _parse(raw: str | None) -> list[Any] | None:
    if not raw:
        return []
    try:
        records = json.loads(raw)
    except ValueError:
        return None
    return records if isinstance(records, list) else None
