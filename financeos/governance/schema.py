"""
Governance Schema — Pydantic models for every FinanceOS governance entity.

These models are the canonical data structures of the Action Governance
Core. They define the shape of persisted records (policy, installed
modules, audit ledger), the payloads carried on the event bus, and the
values exchanged between the dispatcher and its callers.

Persisted records are JSON-encoded with camelCase keys
(``autonomyMode``, ``grantedPermissions``, ``moduleId``); every model
accepts either camelCase or snake_case on input.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Annotated, Any
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

CORE_MODULE_PREFIX = "core."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class AutonomyMode(str, enum.Enum):
    """How much independent action automation may take."""

    READONLY = "readonly"  # View only, no actions
    SUGGEST = "suggest"  # Automation suggests, the user decides
    CONFIRM = "confirm"  # Automation acts after user approval
    AUTO = "auto"  # Automation acts within the risk rules


class Permission(str, enum.Enum):
    """Capability tokens a module may be granted at install time."""

    READ = "read"
    SUGGEST = "suggest"
    TRADE = "trade"
    MOVE_FUNDS = "move_funds"


class AuditLevel(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DecisionStatus(str, enum.Enum):
    OK = "ok"
    DENY = "deny"


class DispatchStatus(str, enum.Enum):
    """The three effective outcomes reported to a dispatch caller."""

    DENIED = "denied"
    NEEDS_APPROVAL = "needs_approval"
    EXECUTED = "executed"


class TradeSide(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ════════════════════════════════════════════════════════════════
# Base
# ════════════════════════════════════════════════════════════════


class GovernanceModel(BaseModel):
    """Base for governance models: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible dict used for persistence."""
        return self.model_dump(mode="json", by_alias=True)


class FrozenGovernanceModel(GovernanceModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


# ════════════════════════════════════════════════════════════════
# Policy
# ════════════════════════════════════════════════════════════════


class PolicyState(GovernanceModel):
    """
    The user's risk and autonomy configuration.

    Only ``kill_switch``, ``allow_leverage`` and ``autonomy_mode`` gate
    decisions today. The percentage limits are advisory and carried for
    additional rules.
    """

    autonomy_mode: AutonomyMode = AutonomyMode.SUGGEST
    max_daily_loss_pct: float = Field(default=5.0, ge=0, le=100)
    max_position_size_pct: float = Field(default=10.0, ge=0, le=100)
    max_crypto_allocation_pct: float = Field(default=30.0, ge=0, le=100)
    allow_leverage: bool = False
    kill_switch: bool = False


class PolicyDecision(FrozenGovernanceModel):
    """Output of policy evaluation. Never persisted directly."""

    status: DecisionStatus
    requires_user_approval: bool = False
    reason: str | None = None

    @property
    def is_denied(self) -> bool:
        return self.status == DecisionStatus.DENY


# ════════════════════════════════════════════════════════════════
# Actions
# ════════════════════════════════════════════════════════════════


class TradeIntent(FrozenGovernanceModel):
    symbol: str | None = None
    side: TradeSide | None = None
    amount: float | None = Field(default=None, ge=0)
    leverage: bool = False


class NotificationIntent(FrozenGovernanceModel):
    channel: NotificationChannel | None = None
    message: str | None = None


class ActionRequest(FrozenGovernanceModel):
    """
    A proposal to perform a financial or notification action.

    Constructed once by a producer (connector, automation, UI action),
    passed once through the dispatcher, and never mutated afterwards.
    Only its audit projection is persisted.
    """

    id: UUID = Field(default_factory=uuid4)
    ts: UtcDatetime = Field(default_factory=utcnow)
    module_id: str
    kind: str
    summary: str
    trade: TradeIntent | None = None
    notify: NotificationIntent | None = None

    @classmethod
    def create(
        cls,
        module_id: str,
        kind: str,
        summary: str,
        trade: TradeIntent | None = None,
        notify: NotificationIntent | None = None,
    ) -> ActionRequest:
        """Build a request stamped with a fresh id and the current time."""
        return cls(
            id=uuid4(),
            ts=utcnow(),
            module_id=module_id,
            kind=kind,
            summary=summary,
            trade=trade,
            notify=notify,
        )


class DispatchResult(FrozenGovernanceModel):
    status: DispatchStatus
    reason: str | None = None


class ActionCompleted(FrozenGovernanceModel):
    """Payload of the ``action.completed`` event."""

    request: ActionRequest
    status: DispatchStatus


# ════════════════════════════════════════════════════════════════
# Modules
# ════════════════════════════════════════════════════════════════


class ModuleManifest(FrozenGovernanceModel):
    """
    Describes a pluggable module and the permissions it asks for.

    Routes and widgets are opaque descriptors owned by the presentation
    layer; the governance core only reads ``id`` and
    ``requested_permissions``.
    """

    id: str
    name: str
    version: str = "0.1.0"
    risk: RiskLevel = RiskLevel.LOW
    description: str | None = None
    requested_permissions: frozenset[Permission] = Field(default_factory=frozenset)
    capabilities: list[str] = Field(default_factory=list)
    routes: list[dict[str, Any]] = Field(default_factory=list)
    widgets: list[dict[str, Any]] = Field(default_factory=list)
    subscribes_to: list[str] = Field(default_factory=list)

    @property
    def is_core(self) -> bool:
        return self.id.startswith(CORE_MODULE_PREFIX)

    @field_serializer("requested_permissions")
    def _serialize_permissions(self, value: frozenset[Permission]) -> list[str]:
        return sorted(p.value for p in value)


class InstalledModule(GovernanceModel):
    """A module's installation record in the permission registry."""

    id: str
    enabled: bool = True
    granted_permissions: frozenset[Permission] = Field(default_factory=frozenset)
    installed_at: UtcDatetime = Field(default_factory=utcnow)

    @field_serializer("granted_permissions")
    def _serialize_permissions(self, value: frozenset[Permission]) -> list[str]:
        return sorted(p.value for p in value)


# ════════════════════════════════════════════════════════════════
# Audit
# ════════════════════════════════════════════════════════════════


class AuditEntry(FrozenGovernanceModel):
    """
    One append-only audit ledger record.

    ``actor`` is the human-readable source of the event ("Policy Engine",
    "User", a module name, "Automation Runtime"). ``data`` carries
    free-form structured detail for forensic review.
    """

    id: UUID = Field(default_factory=uuid4)
    ts: UtcDatetime = Field(default_factory=utcnow)
    level: AuditLevel = AuditLevel.INFO
    title: str
    description: str | None = None
    actor: str
    module_id: str | None = None
    data: dict[str, Any] | None = None
