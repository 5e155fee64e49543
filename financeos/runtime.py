"""
FinanceOS — Governance runtime wiring.

Central construction point that:
1. Opens the key-value storage backend
2. Builds the event bus, audit ledger, policy store and permission registry
3. Loads the module catalog (installing core modules)
4. Hands back a dispatcher wired to all of the above

UI actions and automations hold one GovernanceRuntime and call
``runtime.dispatcher.dispatch(request)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import structlog

from financeos.config import FinanceOSSettings, settings as default_settings
from financeos.events.bus import EventBus
from financeos.governance.dispatcher import ActionDispatcher
from financeos.governance.permissions import PermissionRegistry
from financeos.governance.policy_store import PolicyStore
from financeos.governance.schema import ModuleManifest, PolicyState
from financeos.ledger.service import AuditLedger
from financeos.plugins.catalog import MODULE_CATALOG
from financeos.plugins.loader import PlatformLoadResult, load_platform
from financeos.storage.kv import KeyValueStore, SqlKeyValueStore


def configure_logging(settings: FinanceOSSettings | None = None) -> None:
    """Configure structured logging."""
    settings = settings or default_settings
    level = logging.getLevelName(settings.log_level.upper())

    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass
class GovernanceRuntime:
    """Every governance component, wired together over one store and bus."""

    store: KeyValueStore
    bus: EventBus
    ledger: AuditLedger
    policy_store: PolicyStore
    registry: PermissionRegistry
    dispatcher: ActionDispatcher
    platform: PlatformLoadResult


def default_policy(settings: FinanceOSSettings) -> PolicyState:
    return PolicyState(
        autonomy_mode=settings.default_autonomy_mode,
        max_daily_loss_pct=settings.default_max_daily_loss_pct,
        max_position_size_pct=settings.default_max_position_size_pct,
        max_crypto_allocation_pct=settings.default_max_crypto_allocation_pct,
    )


def open_store(settings: FinanceOSSettings) -> SqlKeyValueStore:
    store = SqlKeyValueStore(settings.storage_url)
    store.initialize()
    return store


def build_runtime(
    settings: FinanceOSSettings | None = None,
    store: KeyValueStore | None = None,
    catalog: list[ModuleManifest] | None = None,
) -> GovernanceRuntime:
    """
    Build a governance runtime.

    Args:
        settings: Configuration; defaults to the environment.
        store: Storage backend; defaults to SQL storage at ``storage_url``.
        catalog: Module catalog; defaults to the built-in catalog.
    """
    settings = settings or default_settings
    log = structlog.get_logger()

    if store is None:
        store = open_store(settings)

    bus = EventBus()
    ledger = AuditLedger(store, bus)
    policy_store = PolicyStore(store, bus, ledger, defaults=default_policy(settings))
    registry = PermissionRegistry(
        store, bus, ledger, core_prefix=settings.core_module_prefix
    )
    dispatcher = ActionDispatcher(
        policy_store,
        ledger,
        bus,
        registry=registry,
        enforce_module_permissions=settings.enforce_module_permissions,
    )

    platform = load_platform(catalog if catalog is not None else MODULE_CATALOG, registry)
    log.info(
        "financeos.runtime.ready",
        modules=len(platform.modules),
        core_installed=platform.newly_installed,
        enforce_module_permissions=settings.enforce_module_permissions,
    )

    return GovernanceRuntime(
        store=store,
        bus=bus,
        ledger=ledger,
        policy_store=policy_store,
        registry=registry,
        dispatcher=dispatcher,
        platform=platform,
    )
