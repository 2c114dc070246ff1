"""
Change notification for permission consumers.

The store owns one ``PermissionEvents`` channel and emits a single
payload-free "permissions-updated" signal after permissions change.
Consumers subscribe when they start and unsubscribe when they stop; on a
signal they re-run their checks and refresh if they need fresh data.
"""
from typing import Callable, Dict

from rolegate.utils import get_logger


log = get_logger(__name__)

PERMISSIONS_UPDATED = "permissions-updated"

Listener = Callable[[], None]


class Subscription:
    """Handle returned by ``PermissionEvents.subscribe``."""

    def __init__(self, channel: "PermissionEvents", token: int):
        self._channel = channel
        self._token = token

    @property
    def active(self) -> bool:
        return self._token in self._channel._listeners

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        self._channel._listeners.pop(self._token, None)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


class PermissionEvents:
    """Synchronous observer list for the permissions-updated signal."""

    name = PERMISSIONS_UPDATED

    def __init__(self):
        self._listeners: Dict[int, Listener] = {}
        self._next_token = 0

    def subscribe(self, listener: Listener) -> Subscription:
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener
        return Subscription(self, token)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self) -> int:
        """
        Notify every current listener; returns how many were called.

        A failing listener is logged and does not stop delivery to the rest.
        Listeners added or removed during delivery take effect next time.
        """
        listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener()
            except Exception:
                log.exception("Listener for %s failed", self.name)
        log.debug("Emitted %s to %d listener(s)", self.name, len(listeners))
        return len(listeners)
