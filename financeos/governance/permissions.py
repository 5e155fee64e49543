"""
Permission Registry — which modules are installed, enabled, and granted what.

Capability acquisition is gated here, at install time. Grants are
all-or-nothing: ``install`` replaces any prior entry wholesale with
exactly the permissions given, and ``uninstall`` removes the entry so a
re-install needs a fresh grant.

Core modules (ids under the reserved core prefix) are materialized on
every platform load without a user gesture, and cannot be uninstalled.

``is_granted`` answers with a boolean and never raises: an unknown
module, a disabled module, or a missing permission all read as False.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from financeos.events.bus import EventBus, Events
from financeos.exceptions import (
    AuditLedgerError,
    CoreModuleProtectedError,
    StorageError,
)
from financeos.governance.schema import (
    CORE_MODULE_PREFIX,
    AuditEntry,
    AuditLevel,
    InstalledModule,
    ModuleManifest,
    Permission,
    utcnow,
)
from financeos.storage.kv import INSTALLED_MODULES_KEY, KeyValueStore

logger = logging.getLogger(__name__)

_INSTALLED = TypeAdapter(dict[str, InstalledModule])


class PermissionRegistry:
    """
    Central record of module installations and permission grants.

    Usage:
        registry = PermissionRegistry(store, bus, ledger)
        registry.install("risk.leverage", {Permission.READ, Permission.TRADE})
        registry.is_granted("risk.leverage", Permission.TRADE)  # True
        registry.set_enabled("risk.leverage", False)
        registry.is_granted("risk.leverage", Permission.TRADE)  # False
    """

    def __init__(
        self,
        store: KeyValueStore,
        bus: EventBus | None = None,
        ledger: Any = None,
        core_prefix: str = CORE_MODULE_PREFIX,
    ) -> None:
        self.store = store
        self.bus = bus
        self.ledger = ledger
        self.core_prefix = core_prefix

    def is_core(self, module_id: str) -> bool:
        return module_id.startswith(self.core_prefix)

    def install(
        self,
        module_id: str,
        permissions: Iterable[Permission | str],
        actor: str = "User",
    ) -> InstalledModule:
        """
        Install (or re-install) a module with an explicit permission grant.

        Any prior entry for ``module_id`` is replaced; grants are never
        merged incrementally.

        Raises:
            AuditLedgerError: If the install could not be audited; the
                registry is left as it was.
        """
        installed = self._load()
        module = InstalledModule(
            id=module_id,
            enabled=True,
            granted_permissions=frozenset(Permission(p) for p in permissions),
            installed_at=utcnow(),
        )
        installed[module_id] = module

        self._commit(
            installed,
            module_id,
            "installed",
            AuditEntry(
                level=AuditLevel.INFO,
                title="Module installed",
                description=f"Installed {module_id}.",
                actor=actor,
                module_id=module_id,
                data={
                    "grantedPermissions": sorted(
                        p.value for p in module.granted_permissions
                    ),
                },
            ),
        )
        logger.info(
            "Module installed: %s permissions=%s",
            module_id, sorted(p.value for p in module.granted_permissions),
        )
        return module

    def uninstall(self, module_id: str, actor: str = "User") -> bool:
        """
        Remove a module and its grant.

        Returns:
            True if an entry was removed, False if the module was unknown.

        Raises:
            CoreModuleProtectedError: If ``module_id`` is a core module.
        """
        if self.is_core(module_id):
            raise CoreModuleProtectedError(module_id)

        installed = self._load()
        if installed.pop(module_id, None) is None:
            return False

        self._commit(
            installed,
            module_id,
            "uninstalled",
            AuditEntry(
                level=AuditLevel.INFO,
                title="Module uninstalled",
                description=f"Uninstalled {module_id}; permissions revoked.",
                actor=actor,
                module_id=module_id,
            ),
        )
        logger.info("Module uninstalled: %s", module_id)
        return True

    def set_enabled(self, module_id: str, enabled: bool, actor: str = "User") -> bool:
        """
        Enable or disable an installed module. Unknown modules are ignored.

        Returns:
            True if the module exists.
        """
        installed = self._load()
        current = installed.get(module_id)
        if current is None:
            return False

        installed[module_id] = current.model_copy(update={"enabled": enabled})

        state = "enabled" if enabled else "disabled"
        self._commit(
            installed,
            module_id,
            state,
            AuditEntry(
                level=AuditLevel.INFO,
                title=f"Module {state}",
                actor=actor,
                module_id=module_id,
            ),
        )
        logger.info("Module %s: %s", state, module_id)
        return True

    def is_granted(self, module_id: str, permission: Permission | str) -> bool:
        """True only if the module is installed, enabled, and holds ``permission``."""
        module = self._load().get(module_id)
        if module is None or not module.enabled:
            return False
        try:
            return Permission(permission) in module.granted_permissions
        except ValueError:
            return False

    def get(self, module_id: str) -> InstalledModule | None:
        return self._load().get(module_id)

    def snapshot(self) -> dict[str, InstalledModule]:
        """Return every installed module keyed by id."""
        return self._load()

    def ensure_installed(self, manifest: ModuleManifest) -> bool:
        """
        Materialize a missing core module with its full requested set.

        This is the only grant made without a user gesture. Non-core
        manifests and modules already present are left untouched.

        Returns:
            True if the module was installed by this call.
        """
        if not self.is_core(manifest.id):
            return False
        if manifest.id in self._load():
            return False

        self.install(
            manifest.id, manifest.requested_permissions, actor="Platform Loader"
        )
        return True

    # ── Internal ────────────────────────────────────────────────

    def _load(self) -> dict[str, InstalledModule]:
        try:
            raw = self.store.get(INSTALLED_MODULES_KEY)
        except StorageError as exc:
            logger.warning("Module registry unreadable, treating as empty: %s", exc)
            return {}

        if not raw:
            return {}

        try:
            return _INSTALLED.validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Module registry record is corrupt, treating as empty: %d error(s)",
                exc.error_count(),
            )
            return {}

    def _save(self, installed: dict[str, InstalledModule]) -> None:
        self.store.set(
            INSTALLED_MODULES_KEY,
            json.dumps({key: module.to_record() for key, module in installed.items()}),
        )

    def _commit(
        self,
        installed: dict[str, InstalledModule],
        module_id: str,
        change: str,
        entry: AuditEntry,
    ) -> None:
        """Save, audit, then announce. A failed audit restores the prior record."""
        previous = self.store.get(INSTALLED_MODULES_KEY)
        self._save(installed)

        if self.ledger is not None:
            try:
                self.ledger.append(entry)
            except AuditLedgerError:
                logger.error("Module change not audited; restoring previous record")
                if previous is None:
                    self.store.delete(INSTALLED_MODULES_KEY)
                else:
                    self.store.set(INSTALLED_MODULES_KEY, previous)
                raise

        if self.bus is not None:
            self.bus.publish(Events.MODULES_UPDATED, {"moduleId": module_id, "change": change})
