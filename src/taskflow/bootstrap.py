# src/taskflow/bootstrap.py

"""
Composition root.

- loads settings once (or takes them injected),
- ensures local (gitignored) directories exist,
- wires storage, the entity store, the notification sink and the reminder scheduler into AppState.

The scheduler is an ordinary object owned by AppState, so tests can build their own
with a fake clock and a fake sink.
"""

from __future__ import annotations

import asyncio
import logging

from .config import Settings, get_settings
from .core.ports import Clock, KeyValueStorage, NotificationSink
from .core.state import AppState
from .logging_setup import setup_logging
from .notifications.reminder_scheduler import ReminderScheduler
from .notifications.sink import LoggingNotificationSink, NullNotificationSink
from .storage.kv_store import SqliteKeyValueStorage
from .tasks.task_store import EntityStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.storage_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Storage then fails soft and the store runs on defaults.
        logger.warning("Could not create data dir %s", settings.data_dir, exc_info=True)


def init_logging(settings: Settings | None = None) -> None:
    """Configure logging from settings: console level from log_level, log file under data_dir."""
    if settings is None:
        settings = get_settings()
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    if not isinstance(console_level, int):
        console_level = logging.INFO
    setup_logging(log_dir=settings.data_dir, console_level=console_level)


def create_app_state(
    *,
    settings: Settings | None = None,
    storage: KeyValueStorage | None = None,
    sink: NotificationSink | None = None,
    clock: Clock | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if storage is None:
        _ensure_local_dirs(settings)
        storage = SqliteKeyValueStorage(settings.storage_path)

    if sink is None:
        sink = LoggingNotificationSink() if settings.notifications_enabled else NullNotificationSink()

    store = EntityStore(storage, key=settings.storage_key, clock=clock)
    store.initialize_user()

    scheduler = ReminderScheduler(
        sink,
        clock=clock,
        loop=loop,
        enabled=settings.notifications_enabled,
    )
    scheduler.attach(store)

    return AppState(
        settings=settings,
        storage=storage,
        store=store,
        sink=sink,
        scheduler=scheduler,
    )


async def start(state: AppState) -> int:
    """Arm reminders for every stored task that is still ahead. Returns timers armed."""
    armed = await state.scheduler.schedule_all_task_notifications(state.store.tasks)
    logger.info("%s started: %d tasks, %d reminders armed", state.settings.app_name, len(state.store.tasks), armed)
    return armed


def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.scheduler.close()
    except Exception:
        logger.exception("Scheduler close failed.")

    try:
        close = getattr(state.storage, "close", None)
        if close is not None:
            close()
    except Exception:
        logger.debug("Storage close failed.", exc_info=True)
