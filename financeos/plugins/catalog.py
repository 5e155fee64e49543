"""
Module Catalog — manifests for every module the platform knows about.

Core modules (``core.*``) ship with the platform and are installed
automatically on load. Everything else is offered in the module store
and needs an explicit install.
"""

from __future__ import annotations

from financeos.governance.schema import ModuleManifest, Permission, RiskLevel

READ = frozenset({Permission.READ})
READ_SUGGEST = frozenset({Permission.READ, Permission.SUGGEST})


def _core(module_id: str, name: str, description: str, capability: str, path: str) -> ModuleManifest:
    return ModuleManifest(
        id=module_id,
        name=name,
        version="1.0.0",
        risk=RiskLevel.LOW,
        description=description,
        requested_permissions=READ,
        capabilities=[capability],
        routes=[{"path": path, "label": name}],
    )


# ════════════════════════════════════════════════════════════════
# Core modules
# ════════════════════════════════════════════════════════════════

CORE_MODULES: list[ModuleManifest] = [
    _core("core.dashboard", "Dashboard", "Primary overview of portfolio and insights.", "overview", "/"),
    _core("core.connectors", "Connectors", "Manage data connections and brokers.", "connectors", "/connectors"),
    _core("core.risk", "Rules & Risk", "Configure autonomy, risk parameters, and safeguards.", "policy", "/rules"),
    _core("core.automations", "Automations", "Build and monitor automation workflows.", "automations", "/automations"),
    _core("core.audit", "Audit Log", "Review platform decisions and activity.", "audit", "/audit"),
    _core("core.store", "Module Store", "Browse and manage installable modules.", "modules", "/store"),
    _core("core.settings", "Settings", "Configure account and platform preferences.", "settings", "/settings"),
]


# ════════════════════════════════════════════════════════════════
# Store modules
# ════════════════════════════════════════════════════════════════

STORE_MODULES: list[ModuleManifest] = [
    ModuleManifest(
        id="connector.binance",
        name="Binance Connector",
        version="0.1.0",
        risk=RiskLevel.LOW,
        description="Read-only Binance spot balances and portfolio widgets.",
        requested_permissions=READ,
        capabilities=["connector", "widgets"],
        widgets=[{"id": "binance.cryptoPortfolioValue", "title": "Crypto Portfolio Value"}],
    ),
    ModuleManifest(
        id="brain.ceo",
        name="CEO Brain (AI)",
        version="0.1.0",
        risk=RiskLevel.LOW,
        description="AI-generated CEO review of the holdings snapshot.",
        requested_permissions=READ_SUGGEST,
        capabilities=["widgets", "routes"],
        subscribes_to=["connector.synced"],
    ),
    ModuleManifest(
        id="market.dca",
        name="DCA Bot",
        version="0.9.0",
        risk=RiskLevel.LOW,
        description="Automated dollar-cost averaging for any asset.",
        requested_permissions=READ_SUGGEST,
        capabilities=["automation", "dca"],
    ),
    ModuleManifest(
        id="options.tracker",
        name="Options Tracker",
        version="0.4.0",
        risk=RiskLevel.LOW,
        description="Track options positions and greeks in real-time.",
        requested_permissions=READ,
        capabilities=["options", "analytics"],
    ),
    ModuleManifest(
        id="risk.leverage",
        name="Leverage Manager",
        version="0.3.0",
        risk=RiskLevel.HIGH,
        description="Manage margin and leveraged positions across brokers.",
        requested_permissions=frozenset({Permission.READ, Permission.TRADE}),
        capabilities=["leverage", "risk"],
    ),
    ModuleManifest(
        id="tax.optimizer",
        name="Tax Optimizer",
        version="0.5.1",
        risk=RiskLevel.MEDIUM,
        description="Automated tax-loss harvesting and gain deferral.",
        requested_permissions=READ_SUGGEST,
        capabilities=["tax", "optimization"],
    ),
    ModuleManifest(
        id="sentiment.scanner",
        name="Sentiment Scanner",
        version="0.6.2",
        risk=RiskLevel.LOW,
        description="AI-powered market sentiment from news and social media.",
        requested_permissions=READ,
        capabilities=["sentiment", "signals"],
    ),
    ModuleManifest(
        id="arbitrage.spotter",
        name="Arbitrage Spotter",
        version="0.7.0",
        risk=RiskLevel.MEDIUM,
        description="Cross-exchange arbitrage opportunity detection.",
        requested_permissions=READ_SUGGEST,
        capabilities=["arbitrage", "signals"],
    ),
]

MODULE_CATALOG: list[ModuleManifest] = CORE_MODULES + STORE_MODULES


def find_manifest(module_id: str, catalog: list[ModuleManifest] | None = None) -> ModuleManifest | None:
    for manifest in catalog if catalog is not None else MODULE_CATALOG:
        if manifest.id == module_id:
            return manifest
    return None
