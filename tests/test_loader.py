"""
Tests for the module catalog and platform loader.

Validates:
- Core modules are materialized on load
- Store modules need an explicit, all-or-nothing install
- Routes and widgets only come from enabled modules
"""

from __future__ import annotations

from financeos.governance.permissions import PermissionRegistry
from financeos.governance.schema import Permission
from financeos.plugins.catalog import CORE_MODULES, MODULE_CATALOG, find_manifest
from financeos.plugins.loader import install_from_manifest, load_platform
from financeos.storage.kv import InMemoryKeyValueStore


class TestCatalog:
    def test_core_modules_are_core(self):
        assert all(m.is_core for m in CORE_MODULES)
        assert len(CORE_MODULES) == 7

    def test_catalog_ids_unique(self):
        ids = [m.id for m in MODULE_CATALOG]
        assert len(ids) == len(set(ids))

    def test_find_manifest(self):
        assert find_manifest("risk.leverage").requested_permissions == {
            Permission.READ,
            Permission.TRADE,
        }
        assert find_manifest("does.not.exist") is None


class TestPlatformLoader:
    def setup_method(self):
        self.registry = PermissionRegistry(InMemoryKeyValueStore())

    def test_first_load_installs_core_modules(self):
        result = load_platform(MODULE_CATALOG, self.registry)

        assert sorted(result.newly_installed) == sorted(m.id for m in CORE_MODULES)
        for manifest in CORE_MODULES:
            assert self.registry.is_granted(manifest.id, Permission.READ)
        assert self.registry.get("market.dca") is None

    def test_second_load_installs_nothing(self):
        load_platform(MODULE_CATALOG, self.registry)
        assert load_platform(MODULE_CATALOG, self.registry).newly_installed == []

    def test_missing_core_module_rematerialized(self):
        load_platform(MODULE_CATALOG, self.registry)
        snapshot = self.registry.snapshot()
        del snapshot["core.audit"]
        self.registry._save(snapshot)

        result = load_platform(MODULE_CATALOG, self.registry)

        assert result.newly_installed == ["core.audit"]

    def test_routes_only_from_enabled_modules(self):
        load_platform(MODULE_CATALOG, self.registry)
        self.registry.set_enabled("core.audit", False)

        result = load_platform(MODULE_CATALOG, self.registry)

        paths = [route["path"] for route in result.routes]
        assert "/rules" in paths
        assert "/audit" not in paths

    def test_widgets_follow_install(self):
        install_from_manifest(self.registry, find_manifest("connector.binance"))
        result = load_platform(MODULE_CATALOG, self.registry)
        assert [w["id"] for w in result.widgets] == ["binance.cryptoPortfolioValue"]

    def test_install_from_manifest_grants_requested_set(self):
        manifest = find_manifest("tax.optimizer")
        module = install_from_manifest(self.registry, manifest)
        assert module.granted_permissions == manifest.requested_permissions

    def test_platform_modules_report_state(self):
        result = load_platform(MODULE_CATALOG, self.registry)
        by_id = {m.manifest.id: m for m in result.modules}
        assert by_id["core.risk"].is_core and by_id["core.risk"].is_enabled
        assert not by_id["market.dca"].is_core
        assert by_id["market.dca"].installed is None
