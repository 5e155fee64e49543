"""
Action Dispatcher — the single entry point for proposed actions.

For one ActionRequest the dispatcher:
1. publishes ``action.requested``
2. loads the current policy and evaluates it (Policy Engine)
3. verifies the originating module still holds the permission implied
   by the action (Permission Registry), when a registry is wired
4. appends exactly one audit entry for the outcome
5. publishes exactly one ``action.completed``
6. returns ``denied``, ``needs_approval`` or ``executed``

Execution is simulated: ``executed`` means the action cleared
governance. Side-effecting execution belongs to whoever consumes the
``action.completed`` event.

An audit entry that cannot be persisted fails the dispatch
(AuditLedgerError propagates) before any completion event is published.
"""

from __future__ import annotations

import logging
from typing import Any

from financeos.events.bus import EventBus, Events
from financeos.governance.policy_engine import evaluate
from financeos.governance.schema import (
    ActionCompleted,
    ActionRequest,
    AuditEntry,
    AuditLevel,
    DispatchResult,
    DispatchStatus,
    Permission,
    PolicyDecision,
)

logger = logging.getLogger(__name__)

POLICY_ENGINE_ACTOR = "Policy Engine"
PERMISSION_REGISTRY_ACTOR = "Permission Registry"
AUTOMATION_RUNTIME_ACTOR = "Automation Runtime"

TRADE_KINDS = frozenset({"trade", "order", "rebalance"})
FUND_MOVEMENT_KINDS = frozenset({"move_funds", "transfer", "withdraw", "deposit"})
SUGGESTION_KINDS = frozenset({"notify", "notification", "suggest", "suggestion", "alert"})


def required_permission(request: ActionRequest) -> Permission:
    """
    The permission a module must hold for ``request`` to proceed.

    A trade payload or trade kind needs ``trade``; a fund movement kind
    needs ``move_funds``; a notification payload or suggestion kind
    needs ``suggest``; anything else needs ``read``.
    """
    kind = request.kind.strip().lower()
    if request.trade is not None or kind in TRADE_KINDS:
        return Permission.TRADE
    if kind in FUND_MOVEMENT_KINDS:
        return Permission.MOVE_FUNDS
    if request.notify is not None or kind in SUGGESTION_KINDS:
        return Permission.SUGGEST
    return Permission.READ


class ActionDispatcher:
    """
    Orchestrates policy, permissions, audit and events for one action.

    Collaborators are injected so tests can pass in-memory fakes:

        dispatcher = ActionDispatcher(policy_store, ledger, bus, registry)
        result = dispatcher.dispatch(ActionRequest.create(
            module_id="market.dca",
            kind="trade",
            summary="Buy 0.01 BTC",
            trade=TradeIntent(symbol="BTC", side="buy", amount=0.01),
        ))
    """

    def __init__(
        self,
        policy_store: Any,
        ledger: Any,
        bus: EventBus,
        registry: Any = None,
        enforce_module_permissions: bool = True,
    ) -> None:
        """
        Args:
            policy_store: Provides ``load() -> PolicyState``.
            ledger: Provides ``append(AuditEntry)``.
            bus: Event bus for request/completion events.
            registry: Optional PermissionRegistry for the module check.
            enforce_module_permissions: Disable to skip the module check
                even when a registry is wired.
        """
        self.policy_store = policy_store
        self.ledger = ledger
        self.bus = bus
        self.registry = registry
        self.enforce_module_permissions = enforce_module_permissions

    def dispatch(self, request: ActionRequest) -> DispatchResult:
        """
        Run one action request through governance.

        Calling this twice with the same request produces two independent
        audit entries; there is no deduplication.

        Raises:
            AuditLedgerError: If the outcome could not be recorded.
        """
        self.bus.publish(Events.ACTION_REQUESTED, request)

        policy = self.policy_store.load()
        decision = evaluate(policy, request)

        if decision.is_denied:
            return self._deny(request, decision.reason, actor=POLICY_ENGINE_ACTOR)

        missing = self._missing_permission(request)
        if missing is not None:
            return self._deny(
                request,
                f"Module '{request.module_id}' does not hold the "
                f"'{missing.value}' permission.",
                actor=PERMISSION_REGISTRY_ACTOR,
                extra={"requiredPermission": missing.value},
            )

        if decision.requires_user_approval:
            return self._await_approval(request, decision)

        return self._execute(request)

    # ── Outcomes ────────────────────────────────────────────────

    def _deny(
        self,
        request: ActionRequest,
        reason: str | None,
        actor: str,
        extra: dict[str, Any] | None = None,
    ) -> DispatchResult:
        self.ledger.append(
            AuditEntry(
                level=AuditLevel.WARNING,
                title="Action denied",
                description=reason or "Policy denied the action request.",
                actor=actor,
                module_id=request.module_id,
                data={**_audit_data(request), **(extra or {})},
            )
        )
        logger.info(
            "Action denied: id=%s kind=%s module=%s reason=%s",
            request.id, request.kind, request.module_id, reason,
        )
        return self._complete(request, DispatchStatus.DENIED, reason)

    def _await_approval(
        self, request: ActionRequest, decision: PolicyDecision
    ) -> DispatchResult:
        self.ledger.append(
            AuditEntry(
                level=AuditLevel.INFO,
                title="Action awaiting approval",
                description=decision.reason or "Waiting for user approval.",
                actor=POLICY_ENGINE_ACTOR,
                module_id=request.module_id,
                data=_audit_data(request),
            )
        )
        logger.info(
            "Action awaiting approval: id=%s kind=%s module=%s",
            request.id, request.kind, request.module_id,
        )
        return self._complete(request, DispatchStatus.NEEDS_APPROVAL, decision.reason)

    def _execute(self, request: ActionRequest) -> DispatchResult:
        self.ledger.append(
            AuditEntry(
                level=AuditLevel.INFO,
                title="Action executed",
                description="Execution simulated successfully.",
                actor=AUTOMATION_RUNTIME_ACTOR,
                module_id=request.module_id,
                data=_audit_data(request),
            )
        )
        logger.info(
            "Action executed: id=%s kind=%s module=%s",
            request.id, request.kind, request.module_id,
        )
        return self._complete(request, DispatchStatus.EXECUTED, None)

    def _complete(
        self, request: ActionRequest, status: DispatchStatus, reason: str | None
    ) -> DispatchResult:
        self.bus.publish(
            Events.ACTION_COMPLETED, ActionCompleted(request=request, status=status)
        )
        return DispatchResult(status=status, reason=reason)

    # ── Internal ────────────────────────────────────────────────

    def _missing_permission(self, request: ActionRequest) -> Permission | None:
        if self.registry is None or not self.enforce_module_permissions:
            return None
        permission = required_permission(request)
        if self.registry.is_granted(request.module_id, permission):
            return None
        return permission


def _audit_data(request: ActionRequest) -> dict[str, Any]:
    return {
        "actionId": str(request.id),
        "kind": request.kind,
        "summary": request.summary,
    }
