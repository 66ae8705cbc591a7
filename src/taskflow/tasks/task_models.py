# src/taskflow/tasks/task_models.py

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Self

DOCUMENT_VERSION = 0

DEFAULT_CATEGORY = "General"
DEFAULT_BEFORE_MINUTES: tuple[int, ...] = (5, 15, 30)


class _ParsableEnum(StrEnum):
    @classmethod
    def parse(cls, raw: Any, default: Self) -> Self:
        """Lenient conversion from stored / caller-supplied values."""
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return default


class Priority(_ParsableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AppointmentType(_ParsableEnum):
    MEETING = "meeting"
    CALL = "call"
    EVENT = "event"
    REMINDER = "reminder"
    DEADLINE = "deadline"


class RecurrencePattern(_ParsableEnum):
    """Advisory only: recurring appointments are never expanded into occurrences."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Theme(_ParsableEnum):
    DARK = "dark"
    LIGHT = "light"


class Language(_ParsableEnum):
    PT = "pt"
    EN = "en"


APPOINTMENT_COLORS: dict[AppointmentType, str] = {
    AppointmentType.MEETING: "#3b82f6",
    AppointmentType.CALL: "#10b981",
    AppointmentType.EVENT: "#f59e0b",
    AppointmentType.REMINDER: "#8b5cf6",
    AppointmentType.DEADLINE: "#ef4444",
}


def color_for_type(kind: AppointmentType) -> str:
    return APPOINTMENT_COLORS.get(kind, "#3b82f6")


def compose_datetime(date: Any, time: Any) -> datetime | None:
    """
    Compose a local wall-clock datetime from "YYYY-MM-DD" + "HH:MM[:SS]".

    Returns None when the pair does not parse; callers treat such records as
    having no due moment at all.
    """
    if not date or not time:
        return None
    try:
        dt = datetime.fromisoformat(f"{str(date).strip()}T{str(time).strip()}")
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def normalize_offsets(raw: Any) -> tuple[int, ...]:
    """Positive minute offsets, de-duplicated, ascending."""
    out: set[int] = set()
    for v in raw or ():
        try:
            m = int(v)
        except (TypeError, ValueError, OverflowError):
            continue
        if m > 0:
            out.add(m)
    return tuple(sorted(out))


def _str(raw: Any, default: str = "") -> str:
    return default if raw is None else str(raw)


def _require_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} record is not an object")
    if not data.get("id"):
        raise ValueError(f"{what} record has no id")
    return data


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    name: str
    description: str
    due_date: str
    due_time: str
    completed: bool
    priority: Priority
    category: str
    created_at: str
    updated_at: str

    @property
    def due_at(self) -> datetime | None:
        return compose_datetime(self.due_date, self.due_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "dueDate": self.due_date,
            "dueTime": self.due_time,
            "completed": self.completed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "priority": self.priority.value,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Task:
        d = _require_dict(data, "task")
        return cls(
            id=str(d["id"]),
            name=_str(d.get("name")),
            description=_str(d.get("description")),
            due_date=_str(d.get("dueDate")),
            due_time=_str(d.get("dueTime")),
            completed=bool(d.get("completed", False)),
            priority=Priority.parse(d.get("priority"), Priority.MEDIUM),
            category=_str(d.get("category")).strip() or DEFAULT_CATEGORY,
            created_at=_str(d.get("createdAt")),
            updated_at=_str(d.get("updatedAt")),
        )


@dataclass(frozen=True, slots=True)
class Appointment:
    id: str
    title: str
    description: str
    date: str
    start_time: str
    end_time: str
    type: AppointmentType
    is_recurring: bool
    color: str
    created_at: str
    updated_at: str
    location: str | None = None
    attendees: tuple[str, ...] = ()
    recurring_pattern: RecurrencePattern | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "type": self.type.value,
            "isRecurring": self.is_recurring,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "color": self.color,
        }
        # Optional fields are omitted rather than written as null.
        if self.location is not None:
            out["location"] = self.location
        if self.attendees:
            out["attendees"] = list(self.attendees)
        if self.recurring_pattern is not None:
            out["recurringPattern"] = self.recurring_pattern.value
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Appointment:
        d = _require_dict(data, "appointment")
        kind = AppointmentType.parse(d.get("type"), AppointmentType.MEETING)
        start_time = _str(d.get("startTime"))
        is_recurring = bool(d.get("isRecurring", False))

        pattern = None
        if is_recurring and d.get("recurringPattern") is not None:
            pattern = RecurrencePattern.parse(d.get("recurringPattern"), RecurrencePattern.WEEKLY)

        attendees_raw = d.get("attendees")
        attendees = tuple(str(a) for a in attendees_raw) if isinstance(attendees_raw, list) else ()

        color = d.get("color")
        location = d.get("location")
        return cls(
            id=str(d["id"]),
            title=_str(d.get("title")),
            description=_str(d.get("description")),
            date=_str(d.get("date")),
            start_time=start_time,
            end_time=_str(d.get("endTime")) or start_time,
            type=kind,
            is_recurring=is_recurring,
            color=color if isinstance(color, str) and color else color_for_type(kind),
            created_at=_str(d.get("createdAt")),
            updated_at=_str(d.get("updatedAt")),
            location=None if location is None else str(location),
            attendees=attendees,
            recurring_pattern=pattern,
        )


@dataclass(frozen=True, slots=True)
class User:
    """Device-scoped identity. At most one per store."""

    id: str
    device_name: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "deviceName": self.device_name, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Any) -> User:
        d = _require_dict(data, "user")
        return cls(
            id=str(d["id"]),
            device_name=_str(d.get("deviceName")),
            created_at=_str(d.get("createdAt")),
        )


@dataclass(frozen=True, slots=True)
class NotificationSettings:
    enabled: bool = True
    before_minutes: tuple[int, ...] = DEFAULT_BEFORE_MINUTES
    sound: bool = True
    vibration: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "beforeMinutes": list(self.before_minutes),
            "sound": self.sound,
            "vibration": self.vibration,
        }

    @classmethod
    def from_dict(cls, data: Any) -> NotificationSettings:
        if not isinstance(data, dict):
            return cls()
        raw_offsets = data.get("beforeMinutes")
        return cls(
            enabled=bool(data.get("enabled", True)),
            before_minutes=(
                normalize_offsets(raw_offsets) if isinstance(raw_offsets, list) else DEFAULT_BEFORE_MINUTES
            ),
            sound=bool(data.get("sound", True)),
            vibration=bool(data.get("vibration", True)),
        )


@dataclass(frozen=True, slots=True)
class AppSettings:
    theme: Theme = Theme.DARK
    language: Language = Language.PT
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme.value,
            "language": self.language.value,
            "notifications": self.notifications.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> AppSettings:
        if not isinstance(data, dict):
            return cls()
        return cls(
            theme=Theme.parse(data.get("theme"), Theme.DARK),
            language=Language.parse(data.get("language"), Language.PT),
            notifications=NotificationSettings.from_dict(data.get("notifications")),
        )


@dataclass(frozen=True, slots=True)
class StoreSnapshot:
    """The persisted subset of the store: exactly what goes into the document."""

    tasks: tuple[Task, ...] = ()
    appointments: tuple[Appointment, ...] = ()
    user: User | None = None
    settings: AppSettings = field(default_factory=AppSettings)


def dump_document(snapshot: StoreSnapshot) -> str:
    return json.dumps(
        {
            "tasks": [t.to_dict() for t in snapshot.tasks],
            "appointments": [a.to_dict() for a in snapshot.appointments],
            "user": snapshot.user.to_dict() if snapshot.user is not None else None,
            "settings": snapshot.settings.to_dict(),
            "version": DOCUMENT_VERSION,
        },
        ensure_ascii=False,
    )


def _load_records(raw: Any, decode: Any, what: str, errors: list[str]) -> tuple[Any, ...]:
    if not isinstance(raw, list):
        return ()
    out = []
    for i, item in enumerate(raw):
        try:
            out.append(decode(item))
        except ValueError as e:
            errors.append(f"{what}[{i}]: {e}")
    return tuple(out)


def load_document(raw: str) -> tuple[StoreSnapshot, list[str]]:
    """
    Decode a persisted document.

    Raises ValueError if the payload is not a JSON object at all.
    Individual bad records are skipped and described in the returned error list.
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("document is not a JSON object")

    errors: list[str] = []
    tasks = _load_records(data.get("tasks"), Task.from_dict, "tasks", errors)
    appointments = _load_records(data.get("appointments"), Appointment.from_dict, "appointments", errors)

    user = None
    if data.get("user") is not None:
        try:
            user = User.from_dict(data["user"])
        except ValueError as e:
            errors.append(f"user: {e}")

    snapshot = StoreSnapshot(
        tasks=tasks,
        appointments=appointments,
        user=user,
        settings=AppSettings.from_dict(data.get("settings")),
    )
    return snapshot, errors
