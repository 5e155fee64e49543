"""
Tests for the Policy Store.

Validates:
- Defaults on first read and merge of partial records
- Fail-soft recovery from corrupt or unreadable records
- Update side effects (event + audit entry)
- Kill switch latching and reset
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from financeos.events.bus import EventBus, Events
from financeos.exceptions import (
    AuditLedgerError,
    KillSwitchLatchedError,
    StorageError,
    UnknownPolicyFieldError,
)
from financeos.governance.policy_store import PolicyStore
from financeos.governance.schema import AuditLevel, AutonomyMode, PolicyState
from financeos.ledger.service import AuditLedger
from financeos.storage.kv import AUDIT_KEY, POLICY_KEY, InMemoryKeyValueStore


class UnreadableStore(InMemoryKeyValueStore):
    def get(self, key: str) -> str | None:
        raise StorageError(key, "read", "timeout")


class AuditWriteFailsStore(InMemoryKeyValueStore):
    def set(self, key: str, value: str) -> None:
        if key == AUDIT_KEY:
            raise StorageError(key, "write", "read-only filesystem")
        super().set(key, value)


class TestPolicyLoad:
    """Loading never fails and always yields a usable policy."""

    def test_defaults_on_first_read(self):
        policy = PolicyStore(InMemoryKeyValueStore()).load()
        assert policy == PolicyState()
        assert policy.autonomy_mode == AutonomyMode.SUGGEST
        assert policy.max_daily_loss_pct == 5
        assert policy.max_position_size_pct == 10
        assert policy.max_crypto_allocation_pct == 30
        assert policy.allow_leverage is False
        assert policy.kill_switch is False

    def test_partial_record_merged_over_defaults(self):
        store = InMemoryKeyValueStore({POLICY_KEY: json.dumps({"autonomyMode": "auto"})})
        policy = PolicyStore(store).load()
        assert policy.autonomy_mode == AutonomyMode.AUTO
        assert policy.max_crypto_allocation_pct == 30

    def test_custom_defaults(self):
        defaults = PolicyState(autonomy_mode=AutonomyMode.CONFIRM, max_daily_loss_pct=2)
        policy = PolicyStore(InMemoryKeyValueStore(), defaults=defaults).load()
        assert policy == defaults

    @pytest.mark.parametrize(
        "raw",
        ["not json", "[1, 2, 3]", json.dumps({"autonomyMode": "yolo"}), json.dumps({"maxDailyLossPct": 500})],
    )
    def test_corrupt_record_falls_back_to_defaults(self, raw):
        store = InMemoryKeyValueStore({POLICY_KEY: raw})
        assert PolicyStore(store).load() == PolicyState()

    def test_unreadable_store_falls_back_to_defaults(self):
        assert PolicyStore(UnreadableStore()).load() == PolicyState()


class TestPolicyUpdate:
    """Updates persist, announce, and audit."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()
        self.bus = EventBus()
        self.ledger = AuditLedger(self.store, self.bus)
        self.policy_store = PolicyStore(self.store, self.bus, self.ledger)
        self.published: list[PolicyState] = []
        self.bus.subscribe(Events.POLICY_UPDATED, self.published.append)

    def test_update_persists(self):
        self.policy_store.update({"autonomy_mode": "auto"}, title="Autonomy mode updated")
        assert PolicyStore(self.store).load().autonomy_mode == AutonomyMode.AUTO
        stored = json.loads(self.store.get(POLICY_KEY))
        assert stored["autonomyMode"] == "auto"

    def test_update_accepts_camel_case_keys(self):
        policy = self.policy_store.update({"allowLeverage": True}, title="Leverage enabled")
        assert policy.allow_leverage is True

    def test_update_publishes_and_audits(self):
        policy = self.policy_store.update(
            {"max_position_size_pct": 15},
            title="Risk limits updated",
            description="Max position size set to 15%.",
        )
        assert self.published == [policy]

        entries = self.ledger.list()
        assert len(entries) == 1
        assert entries[0].title == "Risk limits updated"
        assert entries[0].actor == "User"
        assert entries[0].level == AuditLevel.INFO
        assert entries[0].data == {"maxPositionSizePct": 15.0}

    def test_invalid_update_changes_nothing(self):
        with pytest.raises(ValidationError):
            self.policy_store.update({"max_daily_loss_pct": -1}, title="Bad")
        assert self.store.get(POLICY_KEY) is None
        assert self.published == []
        assert self.ledger.count() == 0

    def test_unknown_field_rejected(self):
        with pytest.raises(UnknownPolicyFieldError) as exc_info:
            self.policy_store.update({"kill_swich": True}, title="Kill switch activated")

        assert exc_info.value.fields == ["kill_swich"]
        assert self.store.get(POLICY_KEY) is None
        assert self.published == []
        assert self.ledger.count() == 0

    def test_audit_entry_precedes_announcement(self):
        order = []
        self.bus.subscribe(Events.AUDIT_APPENDED, lambda _: order.append("audited"))
        self.bus.subscribe(Events.POLICY_UPDATED, lambda _: order.append("announced"))

        self.policy_store.update({"allow_leverage": True}, title="Leverage enabled")

        assert order == ["audited", "announced"]


class TestUnauditedPolicyChanges:
    """A policy change that cannot be audited does not take effect."""

    def setup_method(self):
        self.store = AuditWriteFailsStore()
        self.bus = EventBus()
        self.published: list[PolicyState] = []
        self.bus.subscribe(Events.POLICY_UPDATED, self.published.append)
        self.policy_store = PolicyStore(self.store, self.bus, AuditLedger(self.store))

    def test_first_update_rolled_back(self):
        with pytest.raises(AuditLedgerError):
            self.policy_store.update({"autonomy_mode": "auto"}, title="Autonomy mode updated")

        assert self.store.get(POLICY_KEY) is None
        assert self.policy_store.load() == PolicyState()
        assert self.published == []

    def test_kill_switch_activation_rolled_back(self):
        PolicyStore(self.store).update({"autonomy_mode": "auto"}, title="Autonomy mode updated")

        with pytest.raises(AuditLedgerError):
            self.policy_store.activate_kill_switch()

        policy = self.policy_store.load()
        assert policy.kill_switch is False
        assert policy.autonomy_mode == AutonomyMode.AUTO
        assert self.published == []


class TestKillSwitch:
    """The kill switch latches until an administrative reset."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()
        self.ledger = AuditLedger(self.store)
        self.policy_store = PolicyStore(self.store, EventBus(), self.ledger)

    def test_activate_sets_readonly(self):
        policy = self.policy_store.activate_kill_switch()
        assert policy.kill_switch is True
        assert policy.autonomy_mode == AutonomyMode.READONLY
        assert self.ledger.list()[0].title == "Kill switch activated"

    def test_update_cannot_release(self):
        self.policy_store.activate_kill_switch()
        with pytest.raises(KillSwitchLatchedError):
            self.policy_store.update({"kill_switch": False}, title="Release")
        assert self.policy_store.load().kill_switch is True

    def test_other_updates_allowed_while_latched(self):
        self.policy_store.activate_kill_switch()
        policy = self.policy_store.update({"allow_leverage": True}, title="Leverage enabled")
        assert policy.kill_switch is True
        assert policy.allow_leverage is True

    def test_reset_releases(self):
        self.policy_store.update({"autonomy_mode": "auto"}, title="Autonomy mode updated")
        self.policy_store.activate_kill_switch()

        policy = self.policy_store.reset()

        assert policy == PolicyState()
        assert self.policy_store.load() == PolicyState()
        latest = self.ledger.list()[0]
        assert latest.title == "Policy reset to defaults"
        assert latest.level == AuditLevel.WARNING
        assert latest.description == "Kill switch released by reset."
