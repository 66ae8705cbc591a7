# src/taskflow/notifications/reminder_scheduler.py

from __future__ import annotations

"""
Reminder scheduler.

For each task it arms one event-loop timer per future fire-time:
- "due minus m minutes" for every configured offset m,
- the due moment itself.

Fire-times already in the past are skipped, never fired late. Armed timers are
kept per task id so they can be cancelled when the task is deleted or completed,
and re-armed when its due moment changes.

Where notifications are shown is the sink's business, not the scheduler's.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..core.ports import Clock, NotificationSink
from ..tasks.task_models import AppSettings, Language, Task, normalize_offsets
from ..tasks.task_store import ChangeKind, EntityKind, EntityStore, StoreChange
from .sink import PermissionState

logger = logging.getLogger(__name__)

DUE_NOW = 0

# language -> offset minutes (DUE_NOW for the due moment, None for any other offset) -> (title, body)
REMINDER_TEMPLATES: dict[Language, dict[int | None, tuple[str, str]]] = {
    Language.EN: {
        5: ("⏰ Task coming up!", "{name} is due in 5 minutes"),
        15: ("📋 Task reminder", "{name} is due in 15 minutes"),
        30: ("🔔 Task scheduled", "{name} is due in 30 minutes"),
        DUE_NOW: ("🚨 Task due!", "{name} is due now!"),
        None: ("🔔 Task reminder", "{name} is due in {minutes} minutes"),
    },
    Language.PT: {
        5: ("⏰ Tarefa próxima!", "{name} vence em 5 minutos"),
        15: ("📋 Lembrete de tarefa", "{name} vence em 15 minutos"),
        30: ("🔔 Tarefa agendada", "{name} vence em 30 minutos"),
        DUE_NOW: ("🚨 Tarefa vencida!", "{name} está vencida agora!"),
        None: ("🔔 Lembrete de tarefa", "{name} vence em {minutes} minutos"),
    },
}


def reminder_message(task_name: str, offset_minutes: int, language: Language = Language.PT) -> tuple[str, str]:
    templates = REMINDER_TEMPLATES.get(language, REMINDER_TEMPLATES[Language.PT])
    title, body = templates.get(offset_minutes, templates[None])
    return title, body.format(name=task_name, minutes=offset_minutes)


@dataclass(slots=True, frozen=True)
class FireTime:
    offset_minutes: int
    fire_at: datetime


def compute_fire_times(due_at: datetime, offsets: Iterable[int], now: datetime) -> list[FireTime]:
    """
    Fire-times strictly after now, earliest first.

    Offsets that land on the same moment collapse into one.
    """
    by_moment: dict[datetime, int] = {due_at: DUE_NOW}
    for m in normalize_offsets(offsets):
        try:
            fire_at = due_at - timedelta(minutes=m)
        except OverflowError:
            # Before datetime.min; can never be in the future anyway.
            continue
        by_moment.setdefault(fire_at, m)
    return [FireTime(offset_minutes=m, fire_at=t) for t, m in sorted(by_moment.items()) if t > now]


@dataclass(slots=True)
class ArmedReminder:
    task_id: str
    task_name: str
    offset_minutes: int
    fire_at: datetime
    handle: asyncio.TimerHandle | None = field(default=None, repr=False, compare=False)


class ReminderScheduler:
    """
    Best-effort, fire-and-forget reminder scheduling.

    Construct one per application (see bootstrap.create_app_state) and inject the sink,
    the clock and the settings source. Scheduling silently declines when notifications
    are disabled or permission is not granted.
    """

    def __init__(
        self,
        sink: NotificationSink,
        *,
        settings_provider: Callable[[], AppSettings] | None = None,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        enabled: bool = True,
        permission: PermissionState = PermissionState.UNKNOWN,
    ) -> None:
        self._sink = sink
        self._settings_provider = settings_provider
        self._clock: Clock = clock or datetime.now
        self._loop = loop
        self._enabled = enabled

        self._permission = permission
        self._permission_request: asyncio.Future[None] | None = None

        self._pending: dict[str, list[ArmedReminder]] = {}
        self._store: EntityStore | None = None
        self._unsubscribe: Callable[[], None] | None = None

    # ---- state ----

    @property
    def permission(self) -> PermissionState:
        return self._permission

    def pending(self, task_id: str | None = None) -> list[ArmedReminder]:
        if task_id is not None:
            items = list(self._pending.get(task_id, ()))
        else:
            items = [r for rs in self._pending.values() for r in rs]
        return sorted(items, key=lambda r: (r.fire_at, r.task_id))

    def _settings(self) -> AppSettings:
        if self._settings_provider is None:
            return AppSettings()
        return self._settings_provider()

    def _notifications_enabled(self) -> bool:
        return self._enabled and self._settings().notifications.enabled

    # ---- permission ----

    async def ensure_permission(self) -> bool:
        """
        Ask the sink at most once per scheduler. GRANTED and DENIED are sticky.
        """
        if self._permission is PermissionState.UNKNOWN:
            if self._permission_request is None or self._permission_request.cancelled():
                self._permission_request = asyncio.ensure_future(self._request_permission())
            # A cancelled caller must not take the shared request down with it.
            await asyncio.shield(self._permission_request)
        return self._permission is PermissionState.GRANTED

    async def _request_permission(self) -> None:
        try:
            raw = await self._sink.request_permission()
        except Exception:
            logger.exception("Notification permission request failed")
            raw = PermissionState.DENIED

        try:
            state = PermissionState(raw)
        except ValueError:
            state = PermissionState.DENIED
        # A dismissed prompt counts as a refusal for the rest of the session.
        self._permission = PermissionState.DENIED if state is PermissionState.UNKNOWN else state
        logger.info("Notification permission resolved: %s", self._permission.value)

    # ---- arming ----

    def arm(self, task: Task) -> int:
        """
        Synchronously (re)arm reminders for a task, without ever prompting for permission.

        Returns the number of timers armed.
        """
        self.cancel(task.id)

        if not self._notifications_enabled() or self._permission is not PermissionState.GRANTED:
            return 0
        if task.completed:
            return 0
        due_at = task.due_at
        if due_at is None:
            return 0

        now = self._clock()
        fire_times = compute_fire_times(due_at, self._settings().notifications.before_minutes, now)
        if not fire_times:
            return 0

        loop = self._get_loop()
        if loop is None:
            logger.warning("No event loop available; reminders for task %s not armed", task.id)
            return 0

        armed: list[ArmedReminder] = []
        for ft in fire_times:
            reminder = ArmedReminder(
                task_id=task.id,
                task_name=task.name,
                offset_minutes=ft.offset_minutes,
                fire_at=ft.fire_at,
            )
            delay = max(0.0, (ft.fire_at - now).total_seconds())
            reminder.handle = loop.call_later(delay, self._fire, reminder)
            armed.append(reminder)

        self._pending[task.id] = armed
        logger.debug(
            "Armed %d reminders task=%s offsets=%s",
            len(armed),
            task.id,
            [r.offset_minutes for r in armed],
        )
        return len(armed)

    def _get_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _fire(self, reminder: ArmedReminder) -> None:
        rs = self._pending.get(reminder.task_id)
        if rs is not None:
            rs[:] = [r for r in rs if r is not reminder]
            if not rs:
                del self._pending[reminder.task_id]

        title, body = reminder_message(reminder.task_name, reminder.offset_minutes, self._settings().language)
        try:
            self._sink.show(title, body, reminder.task_id)
            logger.info("Reminder fired task=%s offset=%s", reminder.task_id, reminder.offset_minutes)
        except Exception:
            logger.exception("Notification display failed task=%s", reminder.task_id)

    async def schedule_task_notification(self, task: Task) -> int:
        """
        Request permission if still unknown, then arm reminders for one task.

        Returns the number of timers armed (0 when declined).
        """
        if not self._notifications_enabled():
            return 0
        if not await self.ensure_permission():
            return 0
        return self.arm(task)

    async def schedule_all_task_notifications(self, tasks: Iterable[Task]) -> int:
        """Schedule every incomplete, future task independently. Returns total timers armed."""
        now = self._clock()
        total = 0
        for task in tasks:
            due_at = task.due_at
            if task.completed or due_at is None or due_at <= now:
                continue
            try:
                total += await self.schedule_task_notification(task)
            except Exception:
                logger.exception("Scheduling reminders failed task=%s", task.id)
        logger.info("Scheduled %d reminders", total)
        return total

    # ---- cancellation ----

    def cancel(self, task_id: str) -> int:
        rs = self._pending.pop(task_id, None)
        if not rs:
            return 0
        for r in rs:
            if r.handle is not None:
                r.handle.cancel()
        logger.debug("Cancelled %d reminders task=%s", len(rs), task_id)
        return len(rs)

    def cancel_all(self) -> int:
        return sum(self.cancel(task_id) for task_id in list(self._pending))

    def clear_all_notifications(self) -> None:
        """Cancel every pending reminder and dismiss everything already shown."""
        self.cancel_all()
        try:
            self._sink.clear_all()
        except Exception:
            logger.exception("Clearing notifications failed")

    def _dismiss(self, task_id: str) -> None:
        self.cancel(task_id)
        try:
            self._sink.close(task_id)
        except Exception:
            logger.exception("Closing notification failed task=%s", task_id)

    # ---- store wiring ----

    def attach(self, store: EntityStore) -> Callable[[], None]:
        """
        Follow store changes:
        - task deleted or completed -> cancel its reminders and dismiss its notification
        - task added, re-opened, renamed or moved -> re-arm (only if permission is already granted)
        - reminder settings changed -> re-arm every incomplete task
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._store = store
        if self._settings_provider is None:
            self._settings_provider = lambda: store.settings
        self._unsubscribe = store.subscribe(self._on_store_change)
        return self._unsubscribe

    def _on_store_change(self, change: StoreChange) -> None:
        if change.entity is EntityKind.SETTINGS:
            before, after = change.before, change.after
            if before is not None and after is not None and before.notifications != after.notifications:
                self._rearm_all()
            return

        if change.entity is not EntityKind.TASK:
            return

        if change.kind is ChangeKind.DELETED:
            self._dismiss(change.before.id)
            return

        task: Task = change.after
        if task.completed:
            self._dismiss(task.id)
            return

        before: Task | None = change.before
        if (
            before is None
            or before.completed
            or before.due_at != task.due_at
            or before.name != task.name
        ):
            self.arm(task)

    def _rearm_all(self) -> None:
        self.cancel_all()
        if self._store is None:
            return
        for task in self._store.tasks:
            try:
                self.arm(task)
            except Exception:
                logger.exception("Re-arming reminders failed task=%s", task.id)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.cancel_all()
