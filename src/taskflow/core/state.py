# src/taskflow/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from ..notifications.reminder_scheduler import ReminderScheduler
from ..tasks.task_store import EntityStore
from .ports import KeyValueStorage, NotificationSink


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Settings

    storage: KeyValueStorage
    store: EntityStore
    sink: NotificationSink
    scheduler: ReminderScheduler
