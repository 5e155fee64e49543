"""FinanceOS exception hierarchy.

All governance-core exceptions inherit from GovernanceError. Policy
evaluation and permission checks never raise; these cover storage, the
audit trail, and administrative guards.
"""


class GovernanceError(Exception):
    """Base exception for all FinanceOS governance errors."""


class StorageError(GovernanceError):
    """Raised when the key-value backend cannot be read or written."""

    def __init__(self, key: str, operation: str, detail: str = "") -> None:
        self.key = key
        self.operation = operation
        message = f"Storage {operation} failed for key '{key}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AuditLedgerError(GovernanceError):
    """Raised when an audit entry cannot be persisted.

    Losing an audit record silently would break accountability, so this
    propagates out of the dispatcher instead of degrading.
    """


class KillSwitchLatchedError(GovernanceError):
    """Raised when an update tries to release an active kill switch.

    Only an administrative reset to defaults clears the kill switch.
    """

    def __init__(self) -> None:
        super().__init__(
            "Kill switch is latched; reset the policy to defaults to release it."
        )


class CoreModuleProtectedError(GovernanceError):
    """Raised when attempting to uninstall a core module."""

    def __init__(self, module_id: str) -> None:
        self.module_id = module_id
        super().__init__(f"Core module cannot be uninstalled: {module_id}")


class UnknownPolicyFieldError(GovernanceError):
    """Raised when a policy update names fields PolicyState does not have."""

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Unknown policy field(s): {', '.join(fields)}")
