# src/taskflow/notifications/sink.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class PermissionState(StrEnum):
    """
    Notification permission.

    UNKNOWN -> GRANTED | DENIED through one request; both outcomes are terminal
    for the session.
    """

    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(slots=True, frozen=True)
class ShownNotification:
    title: str
    body: str
    tag: str


class LoggingNotificationSink:
    """
    Sink for headless / desktop-less runs: "showing" a notification means logging it.

    Like a platform notification center, a tag identifies one visible notification:
    showing the same tag again replaces it, close(tag) dismisses it.
    """

    def __init__(self, *, grant: bool = True) -> None:
        self._grant = grant
        self._visible: dict[str, ShownNotification] = {}

    @property
    def visible(self) -> list[ShownNotification]:
        return list(self._visible.values())

    async def request_permission(self) -> PermissionState:
        state = PermissionState.GRANTED if self._grant else PermissionState.DENIED
        logger.info("Notification permission %s", state.value)
        return state

    def show(self, title: str, body: str, tag: str) -> None:
        self._visible[tag] = ShownNotification(title=title, body=body, tag=tag)
        logger.info("[notify] %s: %s (tag=%s)", title, body, tag)

    def close(self, tag: str) -> None:
        self._visible.pop(tag, None)

    def clear_all(self) -> None:
        self._visible.clear()


class NullNotificationSink:
    """Non-interactive contexts: permission is always denied, nothing is shown."""

    async def request_permission(self) -> PermissionState:
        return PermissionState.DENIED

    def show(self, title: str, body: str, tag: str) -> None:
        return

    def close(self, tag: str) -> None:
        return

    def clear_all(self) -> None:
        return
