# src/taskflow/tasks/task_store.py

from __future__ import annotations

import base64
import contextlib
import locale
import logging
import platform
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..config import DEFAULT_STORAGE_KEY
from ..core.ports import Clock, KeyValueStorage
from .calendar import CalendarEvent, build_calendar_events
from .task_models import (
    DEFAULT_CATEGORY,
    AppSettings,
    Appointment,
    AppointmentType,
    Language,
    NotificationSettings,
    Priority,
    RecurrencePattern,
    StoreSnapshot,
    Task,
    Theme,
    User,
    color_for_type,
    dump_document,
    load_document,
    normalize_offsets,
)

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


class EntityKind(StrEnum):
    TASK = "task"
    APPOINTMENT = "appointment"
    USER = "user"
    SETTINGS = "settings"


@dataclass(frozen=True, slots=True)
class StoreChange:
    """One effective mutation. before is None for ADDED, after is None for DELETED."""

    kind: ChangeKind
    entity: EntityKind
    before: Any | None
    after: Any | None


StoreListener = Callable[[StoreChange], None]


@dataclass(frozen=True, slots=True)
class TaskStats:
    total: int
    upcoming: int
    completed: int
    overdue: int
    this_week: int
    completion_rate: int  # whole percent


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    node: str
    system: str
    machine: str
    language: str


_MOBILE_SYSTEMS = {"android", "ios", "ipados"}

# language -> (mobile label, desktop label)
DEVICE_LABELS: dict[Language, tuple[str, str]] = {
    Language.PT: ("Dispositivo Móvel", "Computador"),
    Language.EN: ("Mobile device", "Computer"),
}


def default_device_info() -> DeviceInfo:
    lang = ""
    with contextlib.suppress(Exception):
        lang = locale.getlocale()[0] or ""
    return DeviceInfo(
        node=platform.node(),
        system=platform.system(),
        machine=platform.machine(),
        language=lang,
    )


def derive_user(info: DeviceInfo, created_at: str, language: Language = Language.PT) -> User:
    """
    Deterministic device identity: the same device characteristics always give the same id.
    """
    fingerprint = f"{info.node}-{info.system}-{info.machine}-{info.language}"
    device_id = base64.urlsafe_b64encode(fingerprint.encode("utf-8")).decode("ascii")[:16]
    mobile, desktop = DEVICE_LABELS.get(language, DEVICE_LABELS[Language.PT])
    label = mobile if info.system.strip().lower() in _MOBILE_SYSTEMS else desktop
    device_name = f"{label} {device_id}"
    return User(id=device_id, device_name=device_name, created_at=created_at)


# ---- caller-input coercion ----
# field -> (new_value, current_value) -> stored value


def _text(v: Any, cur: Any = None) -> str:
    return "" if v is None else str(v)


_TASK_FIELDS: dict[str, Callable[[Any, Any], Any]] = {
    "name": _text,
    "description": _text,
    "due_date": _text,
    "due_time": _text,
    "completed": lambda v, cur: bool(v),
    "priority": lambda v, cur: Priority.parse(v, cur),
    "category": lambda v, cur: ("" if v is None else str(v)).strip() or DEFAULT_CATEGORY,
}

_APPOINTMENT_FIELDS: dict[str, Callable[[Any, Any], Any]] = {
    "title": _text,
    "description": _text,
    "date": _text,
    "start_time": _text,
    "end_time": _text,
    "type": lambda v, cur: AppointmentType.parse(v, cur),
    "location": lambda v, cur: None if v is None else str(v),
    "attendees": lambda v, cur: tuple(str(a) for a in (v or ())),
    "is_recurring": lambda v, cur: bool(v),
    "recurring_pattern": lambda v, cur: (
        None if v is None else RecurrencePattern.parse(v, cur or RecurrencePattern.WEEKLY)
    ),
}

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


def _coerce_changes(
    what: str, current: Any, changes: Mapping[str, Any], fields: Mapping[str, Callable[[Any, Any], Any]]
) -> dict[str, Any]:
    clean: dict[str, Any] = {}
    for name, value in changes.items():
        conv = fields.get(name)
        if conv is None:
            if name in _IMMUTABLE_FIELDS:
                logger.debug("Ignoring immutable %s field %s", what, name)
            else:
                logger.warning("Ignoring unknown %s field %s", what, name)
            continue
        clean[name] = conv(value, getattr(current, name))
    return clean


def _find(items: list[Any], item_id: str) -> int | None:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    return None


class EntityStore:
    """
    Authoritative in-process model of tasks, appointments, the device user and settings.

    Persistence:
    - the whole persisted subset is written as one JSON document under one key
      after every mutation that changed state
    - on construction the document is read back; a missing key, bad payload or
      storage failure all fall back to empty/default state

    Mutations are synchronous and single-writer. Not-found ids are silent no-ops.
    Listeners (see subscribe) are told about every effective change after it is persisted.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
        device_info: Callable[[], DeviceInfo] | None = None,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock: Clock = clock or datetime.now
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._device_info = device_info or default_device_info

        self._tasks: list[Task] = []
        self._appointments: list[Appointment] = []
        self._user: User | None = None
        self._settings = AppSettings()
        self._listeners: list[StoreListener] = []

        self._load()
        logger.info(
            "EntityStore ready key=%s tasks=%d appointments=%d user=%s",
            self._key,
            len(self._tasks),
            len(self._appointments),
            self._user.id if self._user else None,
        )

    # ---- low-level helpers ----

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _load(self) -> None:
        raw = self._storage.get(self._key)
        if raw is None:
            return
        try:
            snapshot, errors = load_document(raw)
        except Exception:
            logger.warning("Stored document under %s is unreadable; using defaults", self._key, exc_info=True)
            return
        for err in errors:
            logger.warning("Skipped stored record %s", err)

        self._tasks = self._unique(snapshot.tasks, "task")
        self._appointments = self._unique(snapshot.appointments, "appointment")
        self._user = snapshot.user
        self._settings = snapshot.settings

    @staticmethod
    def _unique(items: Iterable[Any], what: str) -> list[Any]:
        seen: set[str] = set()
        out = []
        for item in items:
            if item.id in seen:
                logger.warning("Dropping duplicate stored %s id=%s", what, item.id)
                continue
            seen.add(item.id)
            out.append(item)
        return out

    def _persist(self) -> None:
        # Storage is total; a failed write is logged there and the in-memory state stays authoritative.
        self._storage.set(self._key, dump_document(self.snapshot()))

    def _commit(self, *changes: StoreChange) -> None:
        self._persist()
        self._notify(changes)

    def _notify(self, changes: Iterable[StoreChange]) -> None:
        for change in changes:
            logger.debug("Store %s %s", change.kind.value, change.entity.value)
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception:
                    logger.exception("Store listener failed on %s %s", change.kind.value, change.entity.value)

    # ---- state access ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def appointments(self) -> list[Appointment]:
        return list(self._appointments)

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            tasks=tuple(self._tasks),
            appointments=tuple(self._appointments),
            user=self._user,
            settings=self._settings,
        )

    def get_task(self, task_id: str) -> Task | None:
        idx = _find(self._tasks, task_id)
        return None if idx is None else self._tasks[idx]

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        idx = _find(self._appointments, appointment_id)
        return None if idx is None else self._appointments[idx]

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    # ---- tasks ----

    def add_task(
        self,
        *,
        name: str,
        due_date: str,
        due_time: str,
        description: str = "",
        priority: Priority | str = Priority.MEDIUM,
        category: str | None = DEFAULT_CATEGORY,
        completed: bool = False,
    ) -> None:
        now = self._now_iso()
        task = Task(
            id=self._new_id(),
            name=_text(name),
            description=_text(description),
            due_date=_text(due_date),
            due_time=_text(due_time),
            completed=bool(completed),
            priority=Priority.parse(priority, Priority.MEDIUM),
            category=_TASK_FIELDS["category"](category, None),
            created_at=now,
            updated_at=now,
        )
        self._tasks.append(task)
        logger.debug("Task added id=%s due=%s %s", task.id, task.due_date, task.due_time)
        self._commit(StoreChange(ChangeKind.ADDED, EntityKind.TASK, None, task))

    def update_task(self, task_id: str, **changes: Any) -> None:
        idx = _find(self._tasks, task_id)
        if idx is None:
            return
        before = self._tasks[idx]
        clean = _coerce_changes("task", before, changes, _TASK_FIELDS)
        after = replace(before, **clean, updated_at=self._now_iso())
        self._tasks[idx] = after
        self._commit(StoreChange(ChangeKind.UPDATED, EntityKind.TASK, before, after))

    def delete_task(self, task_id: str) -> None:
        idx = _find(self._tasks, task_id)
        if idx is None:
            return
        before = self._tasks.pop(idx)
        self._commit(StoreChange(ChangeKind.DELETED, EntityKind.TASK, before, None))

    def toggle_task(self, task_id: str) -> None:
        idx = _find(self._tasks, task_id)
        if idx is None:
            return
        before = self._tasks[idx]
        after = replace(before, completed=not before.completed, updated_at=self._now_iso())
        self._tasks[idx] = after
        self._commit(StoreChange(ChangeKind.UPDATED, EntityKind.TASK, before, after))

    def clear_completed(self) -> None:
        removed = [t for t in self._tasks if t.completed]
        if not removed:
            return
        self._tasks = [t for t in self._tasks if not t.completed]
        logger.info("Cleared %d completed tasks", len(removed))
        self._commit(*(StoreChange(ChangeKind.DELETED, EntityKind.TASK, t, None) for t in removed))

    # ---- appointments ----

    def add_appointment(
        self,
        *,
        title: str,
        date: str,
        start_time: str,
        end_time: str | None = None,
        type: AppointmentType | str = AppointmentType.MEETING,
        description: str = "",
        location: str | None = None,
        attendees: Iterable[str] | None = None,
        is_recurring: bool = False,
        recurring_pattern: RecurrencePattern | str | None = None,
    ) -> None:
        now = self._now_iso()
        kind = AppointmentType.parse(type, AppointmentType.MEETING)
        pattern = None
        if is_recurring and recurring_pattern is not None:
            pattern = RecurrencePattern.parse(recurring_pattern, RecurrencePattern.WEEKLY)
        appointment = Appointment(
            id=self._new_id(),
            title=_text(title),
            description=_text(description),
            date=_text(date),
            start_time=_text(start_time),
            end_time=_text(end_time) or _text(start_time),
            type=kind,
            is_recurring=bool(is_recurring),
            color=color_for_type(kind),
            created_at=now,
            updated_at=now,
            location=_APPOINTMENT_FIELDS["location"](location, None),
            attendees=tuple(str(a) for a in (attendees or ())),
            recurring_pattern=pattern,
        )
        self._appointments.append(appointment)
        logger.debug("Appointment added id=%s date=%s %s", appointment.id, appointment.date, appointment.start_time)
        self._commit(StoreChange(ChangeKind.ADDED, EntityKind.APPOINTMENT, None, appointment))

    def update_appointment(self, appointment_id: str, **changes: Any) -> None:
        idx = _find(self._appointments, appointment_id)
        if idx is None:
            return
        before = self._appointments[idx]
        clean = _coerce_changes("appointment", before, changes, _APPOINTMENT_FIELDS)
        after = replace(before, **clean, updated_at=self._now_iso())

        if after.type != before.type:
            after = replace(after, color=color_for_type(after.type))
        if not after.end_time:
            after = replace(after, end_time=after.start_time)
        if not after.is_recurring and after.recurring_pattern is not None:
            after = replace(after, recurring_pattern=None)

        self._appointments[idx] = after
        self._commit(StoreChange(ChangeKind.UPDATED, EntityKind.APPOINTMENT, before, after))

    def delete_appointment(self, appointment_id: str) -> None:
        idx = _find(self._appointments, appointment_id)
        if idx is None:
            return
        before = self._appointments.pop(idx)
        self._commit(StoreChange(ChangeKind.DELETED, EntityKind.APPOINTMENT, before, None))

    # ---- user / settings ----

    def initialize_user(self) -> None:
        """Create the device user if there is none yet. An existing user is never replaced."""
        if self._user is not None:
            return
        self._user = derive_user(self._device_info(), self._now_iso(), self._settings.language)
        logger.info("Initialized device user id=%s", self._user.id)
        self._commit(StoreChange(ChangeKind.ADDED, EntityKind.USER, None, self._user))

    def update_settings(
        self,
        *,
        theme: Theme | str | None = None,
        language: Language | str | None = None,
        notifications: NotificationSettings | Mapping[str, Any] | None = None,
    ) -> None:
        """
        Shallow-merge settings. A notifications mapping is merged field by field,
        so unspecified notification fields keep their values.
        """
        before = self._settings
        notif = before.notifications
        if isinstance(notifications, NotificationSettings):
            notif = replace(notifications, before_minutes=normalize_offsets(notifications.before_minutes))
        elif notifications is not None:
            notif = self._merge_notifications(notif, notifications)

        after = AppSettings(
            theme=before.theme if theme is None else Theme.parse(theme, before.theme),
            language=before.language if language is None else Language.parse(language, before.language),
            notifications=notif,
        )
        if after == before:
            return
        self._settings = after
        self._commit(StoreChange(ChangeKind.UPDATED, EntityKind.SETTINGS, before, after))

    @staticmethod
    def _merge_notifications(current: NotificationSettings, partial: Mapping[str, Any]) -> NotificationSettings:
        clean: dict[str, Any] = {}
        for name, value in partial.items():
            if name in ("enabled", "sound", "vibration"):
                clean[name] = bool(value)
            elif name == "before_minutes":
                clean[name] = normalize_offsets(value)
            else:
                logger.warning("Ignoring unknown notification setting %s", name)
        return replace(current, **clean)

    def reset(self) -> None:
        """Drop every entity, return to defaults and remove the stored document."""
        removed = [StoreChange(ChangeKind.DELETED, EntityKind.TASK, t, None) for t in self._tasks]
        removed += [StoreChange(ChangeKind.DELETED, EntityKind.APPOINTMENT, a, None) for a in self._appointments]

        self._tasks = []
        self._appointments = []
        self._user = None
        self._settings = AppSettings()
        self._storage.remove(self._key)
        logger.info("Store reset key=%s", self._key)
        self._notify(removed)

    # ---- derived queries ----

    def tasks_by_date(self, date: str) -> list[Task]:
        return [t for t in self._tasks if t.due_date == date]

    def upcoming_tasks(self) -> list[Task]:
        """Incomplete tasks due strictly after now."""
        now = self._clock()
        return [t for t in self._tasks if not t.completed and (due := t.due_at) is not None and due > now]

    def overdue_tasks(self) -> list[Task]:
        """Incomplete tasks due strictly before now."""
        now = self._clock()
        return [t for t in self._tasks if not t.completed and (due := t.due_at) is not None and due < now]

    def completed_tasks(self) -> list[Task]:
        return [t for t in self._tasks if t.completed]

    def tasks_by_priority(self, priority: Priority | str) -> list[Task]:
        try:
            wanted = Priority(priority)
        except ValueError:
            return []
        return [t for t in self._tasks if t.priority == wanted]

    def tasks_this_week(self) -> list[Task]:
        """Tasks due within the Monday-to-Sunday week containing now."""
        now = self._clock()
        week_start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
        week_end = week_start + timedelta(days=7)
        return [t for t in self._tasks if (due := t.due_at) is not None and week_start <= due < week_end]

    def appointments_by_date(self, date: str) -> list[Appointment]:
        return [a for a in self._appointments if a.date == date]

    def stats(self) -> TaskStats:
        total = len(self._tasks)
        completed = len(self.completed_tasks())
        return TaskStats(
            total=total,
            upcoming=len(self.upcoming_tasks()),
            completed=completed,
            overdue=len(self.overdue_tasks()),
            this_week=len(self.tasks_this_week()),
            completion_rate=round(completed / total * 100) if total else 0,
        )

    def calendar_events(self) -> list[CalendarEvent]:
        return build_calendar_events(self._tasks, self._appointments)
