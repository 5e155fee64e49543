"""
Policy Store — load-on-demand, save-on-mutation holder of PolicyState.

The policy is a single record. It is created with defaults on first
read, changed only through ``update`` (which announces the change on
the bus and records it in the audit ledger), and never deleted, only
reset to defaults.

The kill switch is one-way latched: once on, ``update`` refuses to turn
it off. Only an administrative ``reset`` releases it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from financeos.events.bus import EventBus, Events
from financeos.exceptions import (
    AuditLedgerError,
    KillSwitchLatchedError,
    StorageError,
    UnknownPolicyFieldError,
)
from financeos.governance.schema import (
    AuditEntry,
    AuditLevel,
    AutonomyMode,
    PolicyState,
)
from financeos.storage.kv import POLICY_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class PolicyStore:
    """Reads and writes the user's PolicyState."""

    def __init__(
        self,
        store: KeyValueStore,
        bus: EventBus | None = None,
        ledger: Any = None,
        defaults: PolicyState | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.ledger = ledger
        self._defaults = defaults or PolicyState()

    def defaults(self) -> PolicyState:
        return self._defaults.model_copy()

    def load(self) -> PolicyState:
        """
        Return the current policy. Never raises.

        A missing record yields defaults; a partial record is merged over
        defaults; a corrupt or unreadable record falls back to defaults.
        """
        try:
            raw = self.store.get(POLICY_KEY)
        except StorageError as exc:
            logger.warning("Policy record unreadable, using defaults: %s", exc)
            return self.defaults()

        if not raw:
            return self.defaults()

        try:
            stored = json.loads(raw)
            if not isinstance(stored, dict):
                raise ValueError("policy record is not an object")
            return PolicyState.model_validate({**self._defaults.to_record(), **stored})
        except (ValueError, ValidationError) as exc:
            logger.warning("Policy record is corrupt, using defaults: %s", exc)
            return self.defaults()

    def update(
        self,
        changes: dict[str, Any],
        title: str,
        description: str | None = None,
        actor: str = "User",
    ) -> PolicyState:
        """
        Apply ``changes`` to the current policy and persist the result.

        Args:
            changes: Field updates, snake_case or camelCase keys.
            title: Audit entry title, e.g. "Autonomy mode updated".
            description: Optional audit entry description.
            actor: Who made the change.

        Returns:
            The new PolicyState.

        Raises:
            UnknownPolicyFieldError: If ``changes`` names a field the policy lacks.
            KillSwitchLatchedError: If the update would release the kill switch.
            AuditLedgerError: If the change could not be audited; the
                previous policy is restored.
            pydantic.ValidationError: If the merged policy is invalid.
        """
        current = self.load()
        updates = {to_snake(key): value for key, value in changes.items()}
        unknown = sorted(set(updates) - set(PolicyState.model_fields))
        if unknown:
            raise UnknownPolicyFieldError(unknown)
        merged = PolicyState.model_validate({**current.model_dump(), **updates})

        if current.kill_switch and not merged.kill_switch:
            raise KillSwitchLatchedError()

        self._commit(
            merged,
            AuditEntry(
                level=AuditLevel.INFO,
                title=title,
                description=description,
                actor=actor,
                data=_changed_fields(current, merged),
            ),
        )
        logger.info("Policy updated: %s", title)
        return merged

    def activate_kill_switch(self, actor: str = "User") -> PolicyState:
        """Engage the emergency stop and drop autonomy to read-only."""
        return self.update(
            {"kill_switch": True, "autonomy_mode": AutonomyMode.READONLY},
            title="Kill switch activated",
            description="All actions are blocked until the policy is reset.",
            actor=actor,
        )

    def reset(self, actor: str = "User") -> PolicyState:
        """Restore defaults. This is the only way to release the kill switch."""
        previous = self.load()
        policy = self.defaults()
        self._commit(
            policy,
            AuditEntry(
                level=AuditLevel.WARNING,
                title="Policy reset to defaults",
                description=(
                    "Kill switch released by reset." if previous.kill_switch else None
                ),
                actor=actor,
                data=policy.to_record(),
            ),
        )
        logger.warning("Policy reset to defaults by %s", actor)
        return policy

    # ── Internal ────────────────────────────────────────────────

    def _save(self, policy: PolicyState) -> None:
        self.store.set(POLICY_KEY, json.dumps(policy.to_record()))

    def _commit(self, policy: PolicyState, entry: AuditEntry) -> None:
        """Save, audit, then announce. A failed audit restores the prior record."""
        previous = self.store.get(POLICY_KEY)
        self._save(policy)

        if self.ledger is not None:
            try:
                self.ledger.append(entry)
            except AuditLedgerError:
                logger.error("Policy change not audited; restoring previous record")
                if previous is None:
                    self.store.delete(POLICY_KEY)
                else:
                    self.store.set(POLICY_KEY, previous)
                raise

        if self.bus is not None:
            self.bus.publish(Events.POLICY_UPDATED, policy)


def _changed_fields(before: PolicyState, after: PolicyState) -> dict[str, Any]:
    old, new = before.to_record(), after.to_record()
    return {key: value for key, value in new.items() if old.get(key) != value}
