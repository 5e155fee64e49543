"""
Platform Loader — reconciles the module catalog with the permission registry.

On every load, missing core modules are installed with their full
requested permission set. The result pairs each manifest with its
installation record and collects the routes and widgets of enabled
modules for the presentation layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from financeos.governance.permissions import PermissionRegistry
from financeos.governance.schema import InstalledModule, ModuleManifest

logger = logging.getLogger(__name__)


@dataclass
class PlatformModule:
    manifest: ModuleManifest
    installed: InstalledModule | None
    is_core: bool

    @property
    def is_enabled(self) -> bool:
        return self.installed is not None and self.installed.enabled


@dataclass
class PlatformLoadResult:
    modules: list[PlatformModule] = field(default_factory=list)
    routes: list[dict[str, Any]] = field(default_factory=list)
    widgets: list[dict[str, Any]] = field(default_factory=list)
    newly_installed: list[str] = field(default_factory=list)


def load_platform(
    catalog: list[ModuleManifest],
    registry: PermissionRegistry,
) -> PlatformLoadResult:
    """
    Load the platform from a module catalog.

    Args:
        catalog: Every known module manifest.
        registry: The permission registry to reconcile against.

    Returns:
        PlatformLoadResult with modules, enabled routes and widgets, and
        the ids of core modules installed by this load.
    """
    newly_installed = [m.id for m in catalog if registry.ensure_installed(m)]
    if newly_installed:
        logger.info("Core modules installed on load: %s", ", ".join(newly_installed))

    installed = registry.snapshot()
    result = PlatformLoadResult(newly_installed=newly_installed)

    for manifest in catalog:
        module = PlatformModule(
            manifest=manifest,
            installed=installed.get(manifest.id),
            is_core=registry.is_core(manifest.id),
        )
        result.modules.append(module)
        if module.is_enabled:
            result.routes.extend(manifest.routes)
            result.widgets.extend(manifest.widgets)

    return result


def install_from_manifest(
    registry: PermissionRegistry,
    manifest: ModuleManifest,
    actor: str = "User",
) -> InstalledModule:
    """Install a module granting exactly what its manifest requests."""
    return registry.install(manifest.id, manifest.requested_permissions, actor=actor)
