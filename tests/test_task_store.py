# tests/test_task_store.py

from __future__ import annotations

import json
from datetime import date, time, timedelta
from pathlib import Path

from taskflow.storage.kv_store import MemoryKeyValueStorage, SqliteKeyValueStorage
from taskflow.tasks.task_models import (
    AppointmentType,
    Language,
    Priority,
    RecurrencePattern,
    Theme,
    dump_document,
    load_document,
)
from taskflow.tasks.task_store import ChangeKind, DeviceInfo, EntityKind, EntityStore, StoreChange

from .conftest import NOW
from .fakes import FailingStorage, FakeClock, due_parts, fixed_device

FUTURE = NOW + timedelta(days=1)


def test_add_task_assigns_id_timestamps_and_defaults(store: EntityStore) -> None:
    result = store.add_task(name="Write report", **due_parts(FUTURE), category="  ")
    assert result is None

    (task,) = store.tasks
    assert task.id == "id-1"
    assert task.created_at == task.updated_at == NOW.isoformat()
    assert task.completed is False
    assert task.priority is Priority.MEDIUM
    assert task.category == "General"
    assert task.description == ""
    assert task.due_at == FUTURE


def test_create_complete_clear(store: EntityStore) -> None:
    store.add_task(name="A", **due_parts(FUTURE))
    store.add_task(name="B", **due_parts(FUTURE))
    a, b = store.tasks

    store.toggle_task(a.id)
    store.clear_completed()

    assert [t.id for t in store.tasks] == [b.id]


def test_delete_missing_id_is_noop(store: EntityStore, storage: MemoryKeyValueStorage) -> None:
    store.add_task(name="A", **due_parts(FUTURE))
    before = store.tasks
    persisted = storage.get("task-flow-storage")

    store.delete_task("does-not-exist")
    store.update_task("does-not-exist", name="x")
    store.toggle_task("does-not-exist")

    assert store.tasks == before
    assert storage.get("task-flow-storage") == persisted


def test_update_changes_only_named_field_and_updated_at(store: EntityStore, clock: FakeClock) -> None:
    store.add_task(name="A", description="first", **due_parts(FUTURE), priority="low", category="Work")
    store.add_task(name="B", **due_parts(FUTURE))
    a_before, b_before = store.tasks

    clock.advance(minutes=5)
    store.update_task(a_before.id, priority="high")
    a_after, b_after = store.tasks

    assert a_after.priority is Priority.HIGH
    assert a_after.updated_at == clock.now.isoformat()
    assert a_after.updated_at != a_before.updated_at

    d_before, d_after = a_before.to_dict(), a_after.to_dict()
    for key in d_before:
        if key not in ("priority", "updatedAt"):
            assert d_after[key] == d_before[key], key
    assert b_after == b_before


def test_update_ignores_immutable_and_unknown_fields(store: EntityStore) -> None:
    store.add_task(name="A", **due_parts(FUTURE))
    (task,) = store.tasks

    store.update_task(task.id, id="hijack", created_at="1999-01-01", color="red", name="A2")

    (after,) = store.tasks
    assert after.id == task.id
    assert after.created_at == task.created_at
    assert after.name == "A2"


def test_toggle_twice_restores_flag_and_advances_updated_at(store: EntityStore, clock: FakeClock) -> None:
    store.add_task(name="A", **due_parts(FUTURE))
    (task,) = store.tasks

    clock.advance(seconds=1)
    store.toggle_task(task.id)
    first = store.get_task(task.id)
    clock.advance(seconds=1)
    store.toggle_task(task.id)
    second = store.get_task(task.id)

    assert first is not None and second is not None
    assert first.completed is True
    assert second.completed is False
    assert task.updated_at < first.updated_at < second.updated_at


def test_upcoming_overdue_completed(store: EntityStore) -> None:
    store.add_task(name="past", **due_parts(NOW - timedelta(hours=1)))
    store.add_task(name="soon", **due_parts(NOW + timedelta(hours=1)))
    store.add_task(name="done", **due_parts(NOW + timedelta(hours=2)), completed=True)

    assert [t.name for t in store.upcoming_tasks()] == ["soon"]
    assert [t.name for t in store.overdue_tasks()] == ["past"]
    assert [t.name for t in store.completed_tasks()] == ["done"]


def test_unparseable_due_is_neither_upcoming_nor_overdue(store: EntityStore) -> None:
    store.add_task(name="broken", due_date="someday", due_time="")
    (task,) = store.tasks
    assert task.due_at is None
    assert store.upcoming_tasks() == []
    assert store.overdue_tasks() == []


def test_tasks_by_date_and_priority(store: EntityStore) -> None:
    store.add_task(name="A", due_date="2026-03-11", due_time="09:00", priority=Priority.HIGH)
    store.add_task(name="B", due_date="2026-03-11", due_time="10:00", priority=Priority.LOW)
    store.add_task(name="C", due_date="2026-03-12", due_time="09:00", priority=Priority.HIGH)

    assert [t.name for t in store.tasks_by_date("2026-03-11")] == ["A", "B"]
    assert [t.name for t in store.tasks_by_priority("high")] == ["A", "C"]
    assert store.tasks_by_priority("urgent") == []


def test_stats_and_this_week(store: EntityStore) -> None:
    # NOW is Tuesday 2026-03-10; the week runs Monday 03-09 .. Sunday 03-15.
    store.add_task(name="monday", due_date="2026-03-09", due_time="08:00")
    store.add_task(name="sunday", due_date="2026-03-15", due_time="23:00", completed=True)
    store.add_task(name="next-monday", due_date="2026-03-16", due_time="00:00")
    store.add_task(name="last-sunday", due_date="2026-03-08", due_time="23:59", completed=True)

    assert [t.name for t in store.tasks_this_week()] == ["monday", "sunday"]

    stats = store.stats()
    assert stats.total == 4
    assert stats.completed == 2
    assert stats.upcoming == 1
    assert stats.overdue == 1
    assert stats.this_week == 2
    assert stats.completion_rate == 50


def test_stats_empty_store(store: EntityStore) -> None:
    assert store.stats().completion_rate == 0


def test_settings_merge_keeps_offsets(store: EntityStore) -> None:
    defaults = store.settings
    assert defaults.notifications.before_minutes == (5, 15, 30)

    store.update_settings(notifications={"sound": False})

    s = store.settings
    assert s.notifications.before_minutes == (5, 15, 30)
    assert s.notifications.sound is False
    assert s.notifications.enabled is defaults.notifications.enabled
    assert s.notifications.vibration is defaults.notifications.vibration
    assert s.theme is defaults.theme
    assert s.language is defaults.language


def test_settings_theme_language_and_offsets(store: EntityStore) -> None:
    store.update_settings(theme="light", language=Language.EN, notifications={"before_minutes": [60, 10, 10, -1]})
    s = store.settings
    assert s.theme is Theme.LIGHT
    assert s.language is Language.EN
    assert s.notifications.before_minutes == (10, 60)


def test_offsets_out_of_int_range_are_dropped(store: EntityStore) -> None:
    store.update_settings(notifications={"before_minutes": [float("inf"), float("nan"), 10, "x"]})
    assert store.settings.notifications.before_minutes == (10,)


def test_initialize_user_is_idempotent(store: EntityStore, clock: FakeClock) -> None:
    store.initialize_user()
    first = store.user
    assert first is not None
    assert first.device_name == f"Computador {first.id}"
    assert len(first.id) == 16

    clock.advance(days=3)
    store.initialize_user()
    assert store.user == first


def test_device_label_follows_language(clock: FakeClock) -> None:
    store = EntityStore(MemoryKeyValueStorage(), clock=clock, device_info=fixed_device)
    store.update_settings(language="en")
    store.initialize_user()
    assert store.user is not None
    assert store.user.device_name == f"Computer {store.user.id}"

    def phone() -> DeviceInfo:
        return DeviceInfo(node="pixel", system="Android", machine="aarch64", language="pt_BR")

    mobile = EntityStore(MemoryKeyValueStorage(), clock=clock, device_info=phone)
    mobile.initialize_user()
    assert mobile.user is not None
    assert mobile.user.device_name == f"Dispositivo Móvel {mobile.user.id}"


def test_user_id_is_deterministic_per_device(clock: FakeClock) -> None:
    a = EntityStore(MemoryKeyValueStorage(), clock=clock, device_info=fixed_device)
    b = EntityStore(MemoryKeyValueStorage(), clock=clock, device_info=fixed_device)
    a.initialize_user()
    b.initialize_user()
    assert a.user is not None and b.user is not None
    assert a.user.id == b.user.id


def test_appointments_defaults_color_and_update(store: EntityStore) -> None:
    store.add_appointment(
        title="Standup",
        date="2026-03-11",
        start_time="09:00",
        type="call",
        attendees=["ana", "rui"],
        recurring_pattern="daily",
    )
    (appt,) = store.appointments
    assert appt.end_time == "09:00"
    assert appt.type is AppointmentType.CALL
    assert appt.color == "#10b981"
    assert appt.attendees == ("ana", "rui")
    # pattern without the recurring flag is not kept
    assert appt.recurring_pattern is None

    store.update_appointment(appt.id, type="deadline", is_recurring=True, recurring_pattern="monthly")
    updated = store.get_appointment(appt.id)
    assert updated is not None
    assert updated.color == "#ef4444"
    assert updated.recurring_pattern is RecurrencePattern.MONTHLY
    assert updated.title == "Standup"

    assert [a.id for a in store.appointments_by_date("2026-03-11")] == [appt.id]
    assert store.appointments_by_date("2026-03-12") == []

    store.delete_appointment("missing")
    store.delete_appointment(appt.id)
    assert store.appointments == []


def test_persisted_state_reloads(tmp_path: Path, clock: FakeClock) -> None:
    db = tmp_path / "storage.sqlite3"
    first = EntityStore(SqliteKeyValueStorage(db), clock=clock, device_info=fixed_device)
    first.initialize_user()
    first.add_task(name="A", **due_parts(FUTURE), priority="high", category="Home")
    first.add_appointment(title="Dentist", date="2026-03-12", start_time="15:00", end_time="16:00", location="Clinic")
    first.update_settings(theme="light", notifications={"vibration": False})

    second = EntityStore(SqliteKeyValueStorage(db), clock=clock)

    assert second.snapshot() == first.snapshot()


def test_document_round_trip(store: EntityStore) -> None:
    store.initialize_user()
    store.add_task(name="A", description="ünïcode ✓", **due_parts(FUTURE))
    store.add_appointment(
        title="Trip",
        date="2026-04-01",
        start_time="07:00",
        type="event",
        attendees=["x"],
        is_recurring=True,
        recurring_pattern="weekly",
    )
    snapshot = store.snapshot()

    raw = dump_document(snapshot)
    decoded, errors = load_document(raw)

    assert errors == []
    assert decoded == snapshot
    doc = json.loads(raw)
    assert set(doc) == {"tasks", "appointments", "user", "settings", "version"}
    assert doc["tasks"][0]["dueDate"] == FUTURE.strftime("%Y-%m-%d")
    assert doc["settings"]["notifications"]["beforeMinutes"] == [5, 15, 30]


def test_bad_payloads_fall_back_to_defaults(clock: FakeClock) -> None:
    for payload in ("not json {", "[1, 2]", "null"):
        store = EntityStore(MemoryKeyValueStorage({"task-flow-storage": payload}), clock=clock)
        assert store.tasks == []
        assert store.user is None
        assert store.settings.notifications.before_minutes == (5, 15, 30)


def test_bad_records_are_skipped(clock: FakeClock) -> None:
    payload = json.dumps(
        {
            "tasks": [
                {"id": "t1", "name": "ok", "dueDate": "2026-03-11", "dueTime": "10:00", "priority": "bogus"},
                {"name": "no id"},
                "garbage",
                {"id": "t1", "name": "duplicate"},
            ],
            "appointments": "nope",
            "user": {"deviceName": "missing id"},
            "settings": {"theme": "neon", "notifications": {"beforeMinutes": "x"}},
        }
    )
    store = EntityStore(MemoryKeyValueStorage({"task-flow-storage": payload}), clock=clock)

    (task,) = store.tasks
    assert task.name == "ok"
    assert task.priority is Priority.MEDIUM
    assert task.category == "General"
    assert store.appointments == []
    assert store.user is None
    assert store.settings.theme is Theme.DARK
    assert store.settings.notifications.before_minutes == (5, 15, 30)


def test_storage_failure_is_not_fatal(clock: FakeClock) -> None:
    storage = FailingStorage()
    store = EntityStore(storage, clock=clock)

    store.add_task(name="A", **due_parts(FUTURE))
    store.toggle_task(store.tasks[0].id)

    assert storage.writes == 2
    assert store.tasks[0].completed is True


def test_listeners_see_effective_changes_only(store: EntityStore) -> None:
    seen: list[StoreChange] = []
    unsubscribe = store.subscribe(seen.append)

    def broken(change: StoreChange) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)

    store.add_task(name="A", **due_parts(FUTURE))
    task_id = store.tasks[0].id
    store.delete_task("missing")
    store.clear_completed()
    store.update_settings(theme="dark")  # already dark
    store.delete_task(task_id)

    assert [(c.kind, c.entity) for c in seen] == [
        (ChangeKind.ADDED, EntityKind.TASK),
        (ChangeKind.DELETED, EntityKind.TASK),
    ]
    assert store.tasks == []

    unsubscribe()
    store.add_task(name="B", **due_parts(FUTURE))
    assert len(seen) == 2


def test_reset_removes_document(store: EntityStore, storage: MemoryKeyValueStorage) -> None:
    store.initialize_user()
    store.add_task(name="A", **due_parts(FUTURE))
    assert storage.get("task-flow-storage") is not None

    store.reset()

    assert store.tasks == []
    assert store.user is None
    assert storage.get("task-flow-storage") is None


def test_date_and_time_objects_are_stored_as_text(store: EntityStore, storage: MemoryKeyValueStorage) -> None:
    seen: list[StoreChange] = []
    store.subscribe(seen.append)

    store.add_task(name="Dentist", due_date=date(2026, 3, 11), due_time=time(10, 0))
    store.add_appointment(title="Review", date=date(2026, 3, 12), start_time=time(9, 30), location=None)

    (task,) = store.tasks
    assert task.due_date == "2026-03-11"
    assert task.due_time == "10:00:00"
    assert task.due_at == NOW.replace(day=11, hour=10)
    assert [t.id for t in store.tasks_by_date("2026-03-11")] == [task.id]

    (appt,) = store.appointments
    assert (appt.date, appt.start_time, appt.end_time) == ("2026-03-12", "09:30:00", "09:30:00")
    assert appt.location is None

    assert [c.kind for c in seen] == [ChangeKind.ADDED, ChangeKind.ADDED]
    doc = json.loads(storage.get("task-flow-storage") or "{}")
    assert doc["tasks"][0]["dueDate"] == "2026-03-11"
    assert doc["appointments"][0]["startTime"] == "09:30:00"
