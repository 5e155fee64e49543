"""
Policy Engine — decides whether a single action request may proceed.

Pure function of (policy, request): no storage access, no side effects,
no exceptions. Rules are checked in a fixed order and the first match
wins:

1. Kill switch active          → deny
2. Leveraged trade, leverage off → deny
3. Autonomy mode ``readonly``   → deny
4. Autonomy mode ``auto``       → ok, no approval
5. ``confirm`` or ``suggest``   → ok, approval required
6. Anything else               → ok, approval required
"""

from __future__ import annotations

from financeos.governance.schema import (
    ActionRequest,
    AutonomyMode,
    DecisionStatus,
    PolicyDecision,
    PolicyState,
)

KILL_SWITCH_REASON = "Kill switch is active."
LEVERAGE_REASON = "Leverage is disabled by policy."
READONLY_REASON = "Autonomy mode is read-only."
APPROVAL_REASON = "User approval required by autonomy mode."


def evaluate(policy: PolicyState, request: ActionRequest) -> PolicyDecision:
    """
    Evaluate an action request against the current policy.

    Args:
        policy: The user's policy state.
        request: The proposed action. Either payload may be absent.

    Returns:
        PolicyDecision. ``requires_user_approval`` is only meaningful
        when the status is ``ok``.
    """
    if policy.kill_switch:
        return PolicyDecision(status=DecisionStatus.DENY, reason=KILL_SWITCH_REASON)

    if request.trade is not None and request.trade.leverage and not policy.allow_leverage:
        return PolicyDecision(status=DecisionStatus.DENY, reason=LEVERAGE_REASON)

    if policy.autonomy_mode == AutonomyMode.READONLY:
        return PolicyDecision(status=DecisionStatus.DENY, reason=READONLY_REASON)

    if policy.autonomy_mode == AutonomyMode.AUTO:
        return PolicyDecision(status=DecisionStatus.OK, requires_user_approval=False)

    if policy.autonomy_mode in (AutonomyMode.CONFIRM, AutonomyMode.SUGGEST):
        return PolicyDecision(
            status=DecisionStatus.OK,
            requires_user_approval=True,
            reason=APPROVAL_REASON,
        )

    # Unrecognized mode
    return PolicyDecision(status=DecisionStatus.OK, requires_user_approval=True)
