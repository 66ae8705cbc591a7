# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The store and the reminder scheduler depend on Protocols instead of concrete
implementations. This keeps storage media and notification platforms swappable
and makes testing with fake clocks / fake sinks easy.
"""

from datetime import datetime
from typing import Awaitable, Callable, Protocol

Clock = Callable[[], datetime]
# Returns "now" as a naive local datetime (due dates/times are local wall-clock values).


class KeyValueStorage(Protocol):
    """
    Durable string store.

    Every method is total: failures are logged by the implementation and
    reported as a neutral value (None / False), never raised.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> bool: ...
    def remove(self, key: str) -> bool: ...


class NotificationSink(Protocol):
    """
    Platform-side port: how the reminder scheduler shows notifications.

    request_permission() may prompt the user, so it is awaitable.
    show()/close()/clear_all() are fire-and-forget.
    """

    def request_permission(self) -> Awaitable[str]: ...
    def show(self, title: str, body: str, tag: str) -> None: ...
    def close(self, tag: str) -> None: ...
    def clear_all(self) -> None: ...
