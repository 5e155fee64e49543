"""
Event Bus — in-process publish/subscribe keyed by event name.

Producers (the dispatcher, the stores, connectors) publish; consumers
(audit viewers, dashboards, executors) subscribe. Delivery is
synchronous, in registration order, within the publisher's own call.

Every handler invocation is isolated: a handler that raises is logged
and skipped, and delivery continues to the remaining handlers. The
publisher never sees a handler's exception.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class Events(str, enum.Enum):
    """Event names published by the governance core."""

    ACTION_REQUESTED = "action.requested"  # ActionRequest
    ACTION_COMPLETED = "action.completed"  # ActionCompleted
    POLICY_UPDATED = "policy.updated"  # PolicyState
    AUDIT_APPENDED = "audit.appended"  # AuditEntry
    MODULES_UPDATED = "modules.updated"  # {"moduleId": ..., "change": ...}
    CONNECTOR_SYNCED = "connector.synced"  # connector-defined


def _event_name(event: Events | str) -> str:
    return event.value if isinstance(event, Events) else str(event)


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """
    Synchronous event bus.

    No queueing, no deferred delivery, no ordering guarantee across
    different event names.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event: Events | str, handler: EventHandler) -> None:
        """Register a handler. Registering the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(_event_name(event), [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(
                "Subscriber registered: event=%s handler=%s",
                _event_name(event), _handler_name(handler),
            )

    def unsubscribe(self, event: Events | str, handler: EventHandler) -> None:
        """Remove a handler. Unknown events or handlers are ignored."""
        handlers = self._handlers.get(_event_name(event))
        if handlers and handler in handlers:
            handlers.remove(handler)
            logger.debug(
                "Subscriber unregistered: event=%s handler=%s",
                _event_name(event), _handler_name(handler),
            )

    def publish(self, event: Events | str, payload: Any) -> int:
        """
        Deliver ``payload`` to every handler registered for ``event``.

        Handlers run against a snapshot of the registrations taken at
        publish time, so a handler may subscribe or unsubscribe safely.

        Returns:
            The number of handlers that completed without raising.
        """
        name = _event_name(event)
        handlers = list(self._handlers.get(name, ()))
        delivered = 0

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception(
                    "Event handler failed: event=%s handler=%s",
                    name, _handler_name(handler),
                )
                continue
            delivered += 1

        return delivered

    def handler_count(self, event: Events | str) -> int:
        return len(self._handlers.get(_event_name(event), ()))

    def clear(self) -> None:
        """Drop every registration."""
        self._handlers.clear()
