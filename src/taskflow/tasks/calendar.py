# src/taskflow/tasks/calendar.py

from __future__ import annotations

"""
Calendar projection.

Tasks and appointments are merged into one uniform, read-only event shape for
display. Events are recomputed on every call and never stored.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from .task_models import Appointment, Priority, Task

PRIORITY_COLORS: dict[Priority, str] = {
    Priority.HIGH: "#ef4444",
    Priority.MEDIUM: "#f59e0b",
    Priority.LOW: "#10b981",
}


class EventKind(StrEnum):
    TASK = "task"
    APPOINTMENT = "appointment"


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    id: str
    title: str
    date: str
    time: str
    type: EventKind
    color: str
    is_completed: bool = False
    priority: Priority | None = None
    category: str | None = None


def task_event(task: Task) -> CalendarEvent:
    return CalendarEvent(
        id=task.id,
        title=task.name,
        date=task.due_date,
        time=task.due_time,
        type=EventKind.TASK,
        color=PRIORITY_COLORS.get(task.priority, "#3b82f6"),
        is_completed=task.completed,
        priority=task.priority,
        category=task.category,
    )


def appointment_event(appointment: Appointment) -> CalendarEvent:
    return CalendarEvent(
        id=appointment.id,
        title=appointment.title,
        date=appointment.date,
        time=appointment.start_time,
        type=EventKind.APPOINTMENT,
        color=appointment.color,
    )


def build_calendar_events(
    tasks: Iterable[Task], appointments: Iterable[Appointment]
) -> list[CalendarEvent]:
    """Tasks first, then appointments, each in collection order."""
    events = [task_event(t) for t in tasks]
    events.extend(appointment_event(a) for a in appointments)
    return events


def events_for_date(events: Iterable[CalendarEvent], date: str) -> list[CalendarEvent]:
    return [e for e in events if e.date == date]


def events_by_date(events: Iterable[CalendarEvent]) -> dict[str, list[CalendarEvent]]:
    """Group by date string; each day's events ordered by time."""
    out: dict[str, list[CalendarEvent]] = {}
    for e in events:
        out.setdefault(e.date, []).append(e)
    for day in out.values():
        day.sort(key=lambda e: e.time)
    return out
