"""
Tests for the Permission Registry.

Validates:
- Grant checks (unknown, disabled, missing permission)
- Wholesale install replacement and uninstall
- Core module protection and auto-install
- Audit and event side effects
"""

from __future__ import annotations

import pytest

from financeos.events.bus import EventBus, Events
from financeos.exceptions import AuditLedgerError, CoreModuleProtectedError, StorageError
from financeos.governance.permissions import PermissionRegistry
from financeos.governance.schema import ModuleManifest, Permission
from financeos.ledger.service import AuditLedger
from financeos.storage.kv import AUDIT_KEY, INSTALLED_MODULES_KEY, InMemoryKeyValueStore


class AuditWriteFailsStore(InMemoryKeyValueStore):
    def set(self, key: str, value: str) -> None:
        if key == AUDIT_KEY:
            raise StorageError(key, "write", "read-only filesystem")
        super().set(key, value)


class TestPermissionRegistry:
    """Test module installation and permission grants."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()
        self.bus = EventBus()
        self.ledger = AuditLedger(self.store)
        self.registry = PermissionRegistry(self.store, self.bus, self.ledger)

    def test_unknown_module_not_granted(self):
        assert self.registry.is_granted("nope", Permission.READ) is False

    def test_installed_module_granted(self):
        self.registry.install("risk.leverage", [Permission.READ, Permission.TRADE])
        assert self.registry.is_granted("risk.leverage", Permission.TRADE) is True
        assert self.registry.is_granted("risk.leverage", "read") is True

    def test_permission_not_in_grant(self):
        self.registry.install("market.dca", [Permission.READ, Permission.SUGGEST])
        assert self.registry.is_granted("market.dca", Permission.TRADE) is False
        assert self.registry.is_granted("market.dca", Permission.MOVE_FUNDS) is False

    def test_unknown_permission_string_not_granted(self):
        self.registry.install("market.dca", [Permission.READ])
        assert self.registry.is_granted("market.dca", "launch_rockets") is False

    def test_disabled_module_not_granted(self):
        self.registry.install("risk.leverage", [Permission.TRADE])
        self.registry.set_enabled("risk.leverage", False)
        assert self.registry.is_granted("risk.leverage", Permission.TRADE) is False

        self.registry.set_enabled("risk.leverage", True)
        assert self.registry.is_granted("risk.leverage", Permission.TRADE) is True

    def test_set_enabled_unknown_is_noop(self):
        assert self.registry.set_enabled("ghost", True) is False
        assert self.registry.snapshot() == {}

    def test_install_replaces_wholesale(self):
        self.registry.install("risk.leverage", [Permission.READ, Permission.TRADE])
        self.registry.set_enabled("risk.leverage", False)
        self.registry.install("risk.leverage", [Permission.READ])

        module = self.registry.get("risk.leverage")
        assert module.enabled is True
        assert module.granted_permissions == frozenset({Permission.READ})

    def test_uninstall_revokes(self):
        self.registry.install("market.dca", [Permission.READ])
        assert self.registry.uninstall("market.dca") is True
        assert self.registry.is_granted("market.dca", Permission.READ) is False
        assert "market.dca" not in self.registry.snapshot()

    def test_uninstall_unknown(self):
        assert self.registry.uninstall("ghost") is False

    def test_core_module_cannot_be_uninstalled(self):
        self.registry.install("core.audit", [Permission.READ])
        with pytest.raises(CoreModuleProtectedError):
            self.registry.uninstall("core.audit")
        assert self.registry.is_granted("core.audit", Permission.READ) is True

    def test_snapshot_persists_as_camel_case_json(self):
        self.registry.install("market.dca", [Permission.SUGGEST, Permission.READ])
        raw = self.store.get(INSTALLED_MODULES_KEY)
        assert '"grantedPermissions": ["read", "suggest"]' in raw
        assert '"installedAt"' in raw

        reloaded = PermissionRegistry(self.store).snapshot()
        assert reloaded["market.dca"].granted_permissions == {Permission.READ, Permission.SUGGEST}

    def test_mutations_are_audited_and_announced(self):
        changes = []
        self.bus.subscribe(Events.MODULES_UPDATED, changes.append)

        self.registry.install("market.dca", [Permission.READ])
        self.registry.set_enabled("market.dca", False)
        self.registry.uninstall("market.dca")

        assert [c["change"] for c in changes] == ["installed", "disabled", "uninstalled"]
        titles = [e.title for e in self.ledger.list()]
        assert sorted(titles) == ["Module disabled", "Module installed", "Module uninstalled"]

    def test_corrupt_registry_reads_as_empty(self):
        self.store.set(INSTALLED_MODULES_KEY, "[[[")
        assert self.registry.snapshot() == {}
        assert self.registry.is_granted("anything", Permission.READ) is False


class TestCoreModuleMaterialization:
    """Core modules are installed without a user gesture."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()
        self.registry = PermissionRegistry(self.store)
        self.core = ModuleManifest(
            id="core.risk",
            name="Rules & Risk",
            requested_permissions=frozenset({Permission.READ}),
        )

    def test_ensure_installed_core(self):
        assert self.registry.ensure_installed(self.core) is True
        assert self.registry.is_granted("core.risk", Permission.READ) is True

    def test_ensure_installed_is_idempotent(self):
        self.registry.ensure_installed(self.core)
        self.registry.set_enabled("core.risk", False)
        assert self.registry.ensure_installed(self.core) is False
        assert self.registry.get("core.risk").enabled is False

    def test_ensure_installed_ignores_store_modules(self):
        manifest = ModuleManifest(
            id="market.dca",
            name="DCA Bot",
            requested_permissions=frozenset({Permission.READ}),
        )
        assert self.registry.ensure_installed(manifest) is False
        assert self.registry.get("market.dca") is None

    def test_custom_core_prefix(self):
        registry = PermissionRegistry(self.store, core_prefix="platform.")
        assert registry.is_core("platform.audit") is True
        assert registry.is_core("core.audit") is False


class TestUnauditedChanges:
    """A change that cannot be audited does not take effect."""

    def setup_method(self):
        self.store = AuditWriteFailsStore()
        self.bus = EventBus()
        self.changes = []
        self.bus.subscribe(Events.MODULES_UPDATED, self.changes.append)
        self.registry = PermissionRegistry(self.store, self.bus, AuditLedger(self.store))

    def test_install_rolled_back(self):
        with pytest.raises(AuditLedgerError):
            self.registry.install("market.dca", [Permission.READ])

        assert self.registry.get("market.dca") is None
        assert self.store.get(INSTALLED_MODULES_KEY) is None
        assert self.changes == []

    def test_disable_rolled_back(self):
        PermissionRegistry(self.store).install("risk.leverage", [Permission.TRADE])

        with pytest.raises(AuditLedgerError):
            self.registry.set_enabled("risk.leverage", False)

        assert self.registry.is_granted("risk.leverage", Permission.TRADE)
        assert self.changes == []
