import threading
from datetime import date, timezone

import pytest

from conftest import at, make_log, make_todo
from productivity_accounting.config import Settings
from productivity_accounting.errors import NotFoundError, OverlapError, RangeError
from productivity_accounting.schema import CategoryShare, ProductivityMetrics
from productivity_accounting.store import Store

DAY = date(2025, 3, 4)


def test_insert_recomputes_duration(store):
    stored = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:30:00"))

    assert stored.id is not None
    assert stored.duration == 90
    assert store.get_time_log("u1", stored.id).duration == 90


def test_timestamps_round_trip_as_utc(store):
    stored = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
    loaded = store.get_time_log("u1", stored.id)

    assert loaded.start == at("2025-03-04T09:00:00")
    assert loaded.start.tzinfo == timezone.utc


def test_overlapping_insert_is_rejected_and_not_stored(store):
    first = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))

    with pytest.raises(OverlapError) as exc:
        store.insert_time_log(make_log("2025-03-04T09:30:00", "2025-03-04T10:30:00"))

    assert exc.value.conflicting_id == first.id
    assert len(store.time_logs_on("u1", DAY)) == 1


def test_touching_insert_is_accepted(store):
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
    store.insert_time_log(make_log("2025-03-04T10:00:00", "2025-03-04T11:00:00"))
    assert len(store.time_logs_on("u1", DAY)) == 2


def test_inverted_insert_is_rejected(store):
    with pytest.raises(RangeError):
        store.insert_time_log(make_log("2025-03-04T10:00:00", "2025-03-04T09:00:00"))
    assert store.time_logs_on("u1", DAY) == []


def test_owners_do_not_conflict(store):
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", owner_id="u1"))
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", owner_id="u2"))

    assert len(store.time_logs_on("u1", DAY)) == 1
    assert len(store.time_logs_on("u2", DAY)) == 1


def test_replace_excludes_itself_but_not_neighbours(store):
    first = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
    store.insert_time_log(make_log("2025-03-04T11:00:00", "2025-03-04T12:00:00"))

    first.end = at("2025-03-04T10:45:00")
    assert store.replace_time_log(first).duration == 105

    first.end = at("2025-03-04T11:30:00")
    with pytest.raises(OverlapError):
        store.replace_time_log(first)
    assert store.get_time_log("u1", first.id).duration == 105


def test_replace_keeps_stored_owner_and_day(store):
    stored = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
    stored.day = date(2025, 3, 5)
    stored.activity = "renamed"

    replaced = store.replace_time_log(stored)
    assert replaced.day == DAY
    assert replaced.activity == "renamed"


def test_other_owner_cannot_read_or_delete(store):
    stored = store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))

    with pytest.raises(NotFoundError):
        store.get_time_log("u2", stored.id)
    with pytest.raises(NotFoundError):
        store.delete_time_log("u2", stored.id)

    store.delete_time_log("u1", stored.id)
    with pytest.raises(NotFoundError):
        store.get_time_log("u1", stored.id)


def test_time_logs_filtered_by_category_and_range(store):
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", category="work"))
    store.insert_time_log(make_log("2025-03-04T10:00:00", "2025-03-04T11:00:00", category="break"))
    store.insert_time_log(make_log("2025-03-06T09:00:00", "2025-03-06T10:00:00", category="work"))

    assert [e.category for e in store.time_logs_on("u1", DAY, category="break")] == ["break"]
    assert [e.day for e in store.time_logs_between("u1", DAY, date(2025, 3, 6))] == [DAY, DAY, date(2025, 3, 6)]


def test_todos_due_window_is_half_open(store):
    store.insert_todos(
        [
            make_todo("2025-03-04T00:00:00", title="midnight"),
            make_todo("2025-03-04T23:59:00", title="late"),
            make_todo("2025-03-05T00:00:00", title="next day"),
            make_todo("2025-03-04T12:00:00", owner_id="u2", title="someone else"),
        ]
    )
    due = store.todos_due_between("u1", at("2025-03-04T00:00:00"), at("2025-03-05T00:00:00"))
    assert [todo.title for todo in due] == ["midnight", "late"]


def test_recurring_todos_lists_parents_only(store):
    parent = store.insert_todo(
        make_todo("2025-03-04T09:00:00", is_recurring=True, recurring_pattern="daily", recurring_end_date=at("2025-03-06T09:00:00"))
    )
    store.insert_todo(make_todo("2025-03-05T09:00:00", parent_todo_id=parent.id))

    assert [todo.id for todo in store.recurring_todos("u1")] == [parent.id]
    assert store.recurring_todos("u2") == []


def test_save_todo_persists_progress(store):
    todo = store.insert_todo(make_todo("2025-03-04T09:00:00"))
    todo.set_progress(100, at("2025-03-04T08:00:00"))
    store.save_todo(todo)

    loaded = store.get_todo("u1", todo.id)
    assert loaded.is_completed is True
    assert loaded.completed_at == at("2025-03-04T08:00:00")
    assert loaded.created_at is not None


def _metrics(day, score, **fields):
    return ProductivityMetrics(owner_id="u1", day=day, productivity_score=score, **fields)


def test_upsert_keeps_one_row_per_owner_and_day(store):
    store.upsert_metrics(_metrics(DAY, 10))
    store.upsert_metrics(_metrics(DAY, 55, category_breakdown=[CategoryShare("work", 60, 100)]))

    rows = store.metrics_between("u1", DAY, DAY)
    assert len(rows) == 1
    assert rows[0].productivity_score == 55
    assert rows[0].category_breakdown == [CategoryShare("work", 60, 100)]


def test_metrics_ordering(store):
    for day in (date(2025, 3, 3), date(2025, 3, 1), date(2025, 3, 2)):
        store.upsert_metrics(_metrics(day, day.day))

    assert [row.day.day for row in store.metrics_between("u1", date(2025, 3, 1), date(2025, 3, 3))] == [1, 2, 3]
    assert store.get_metrics("u2", date(2025, 3, 1)) is None


def test_file_database_persists_between_stores(tmp_path):
    url = f"sqlite:///{tmp_path / 'productivity.db'}"
    settings = Settings(database_url=url)

    first = Store(settings=settings)
    stored = first.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
    first.close()

    second = Store(settings=settings)
    assert second.get_time_log("u1", stored.id).duration == 60
    second.close()


def test_concurrent_inserts_of_one_interval_store_exactly_one(tmp_path):
    racers = 8
    store = Store(settings=Settings(database_url=f"sqlite:///{tmp_path / 'race.db'}"))
    barrier = threading.Barrier(racers)
    outcomes = []

    def insert():
        barrier.wait()
        try:
            store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00"))
            outcomes.append("stored")
        except OverlapError:
            outcomes.append("overlap")

    threads = [threading.Thread(target=insert) for _ in range(racers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["overlap"] * (racers - 1) + ["stored"]
    assert len(store.time_logs_on("u1", DAY)) == 1
    store.close()
