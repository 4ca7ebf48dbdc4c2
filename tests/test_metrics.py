from datetime import date, timedelta

import pytest

from conftest import make_log, make_todo
from productivity_accounting.metrics import (
    STREAK_WINDOW_DAYS,
    category_breakdown,
    compute_daily,
    goal_history,
    percentage,
    productivity_score,
    refresh_daily,
    round_half_up,
    time_score,
    trailing_streak,
)
from productivity_accounting.schema import ProductivityMetrics

DAY = date(2025, 3, 4)


def _todos(total, completed):
    return [make_todo("2025-03-04T17:00:00", completed=i < completed, title=f"t{i}") for i in range(total)]


def test_reference_day():
    todos = _todos(10, 7)
    entries = [make_log("2025-03-04T09:00:00", "2025-03-04T10:30:00", productivity=5)]

    metrics = compute_daily("u1", DAY, todos, entries, daily_goal=8)

    assert metrics.todo_completion_rate == 70
    assert metrics.productive_time == 90
    assert metrics.total_time_logged == 90
    assert metrics.productivity_score == 67
    assert metrics.goal_achieved is False
    assert metrics.streak_days == 0


def test_empty_day_has_zero_metrics():
    metrics = compute_daily("u1", DAY, [], [], daily_goal=8)

    assert metrics.todo_completion_rate == 0
    assert metrics.total_time_logged == 0
    assert metrics.avg_productivity == 0
    assert metrics.avg_mood == 0
    assert metrics.productivity_score == 0
    assert metrics.category_breakdown == []
    assert metrics.goal_achieved is False


def test_zero_goal_gives_full_time_score():
    assert time_score(0, 0) == 100
    metrics = compute_daily("u1", DAY, [], [], daily_goal=0)
    assert metrics.goal_achieved is True
    assert metrics.productivity_score == 30


def test_time_score_is_capped():
    assert time_score(600, 8) == 100
    assert time_score(240, 8) == 50


def test_productive_time_counts_ratings_of_four_and_up():
    entries = [
        make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", productivity=4),
        make_log("2025-03-04T10:00:00", "2025-03-04T11:00:00", productivity=3),
    ]
    metrics = compute_daily("u1", DAY, [], entries)

    assert metrics.productive_time == 60
    assert metrics.total_time_logged == 120
    assert metrics.avg_productivity == pytest.approx(3.5)


def test_other_owners_and_days_are_ignored():
    todos = _todos(2, 1) + [make_todo("2025-03-04T17:00:00", owner_id="u2", completed=True)]
    entries = [
        make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", owner_id="u2", productivity=5),
        make_log("2025-03-05T09:00:00", "2025-03-05T10:00:00", productivity=5),
    ]
    metrics = compute_daily("u1", DAY, todos, entries)

    assert metrics.total_todos == 2
    assert metrics.completed_todos == 1
    assert metrics.total_time_logged == 0


def test_category_breakdown_keeps_first_seen_order():
    entries = [
        make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", category="work"),
        make_log("2025-03-04T10:00:00", "2025-03-04T10:30:00", category="break"),
        make_log("2025-03-04T10:30:00", "2025-03-04T11:00:00", category="work"),
    ]
    shares = category_breakdown(entries)

    assert [(s.category, s.duration, s.percentage) for s in shares] == [("work", 90, 75), ("break", 30, 25)]


def test_rounding_goes_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(66.5) == 67
    assert round_half_up(3.25, 1) == 3.3
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(5, 0) == 0


def test_productivity_score_weights():
    assert productivity_score(100, 480, 8, 5) == 100
    assert productivity_score(50, 240, 8, 2.5) == 50


def _row(day, achieved):
    return ProductivityMetrics(owner_id="u1", day=day, goal_achieved=achieved)


def test_trailing_streak_counts_consecutive_prior_days():
    history = [_row(DAY - timedelta(days=1), True), _row(DAY - timedelta(days=2), True), _row(DAY - timedelta(days=3), False)]
    assert trailing_streak(DAY, True, history) == 3
    assert trailing_streak(DAY, False, history) == 0


def test_trailing_streak_breaks_on_missing_day():
    history = [_row(DAY - timedelta(days=2), True)]
    assert trailing_streak(DAY, True, history) == 1


def test_refresh_is_idempotent(store, settings):
    store.insert_todo(make_todo("2025-03-04T12:00:00", completed=True))
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T11:00:00", productivity=5))

    first = refresh_daily(store, "u1", DAY, settings=settings)
    second = refresh_daily(store, "u1", DAY, settings=settings)

    assert first == second
    assert len(store.metrics_between("u1", DAY, DAY)) == 1


def test_refresh_reflects_new_sources(store, settings):
    before = refresh_daily(store, "u1", DAY, settings=settings)
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", productivity=4))
    after = refresh_daily(store, "u1", DAY, settings=settings)

    assert before.total_time_logged == 0
    assert after.total_time_logged == 60


def test_refresh_keeps_stored_goal_unless_given(store, settings):
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T11:00:00", productivity=5))

    assert refresh_daily(store, "u1", DAY, settings=settings).goal_achieved is False
    updated = refresh_daily(store, "u1", DAY, settings=settings, daily_goal=2)
    assert updated.goal_achieved is True
    assert refresh_daily(store, "u1", DAY, settings=settings).daily_goal == 2


def test_refresh_streak_uses_earlier_days(store, settings):
    for offset in (2, 1, 0):
        day = DAY - timedelta(days=offset)
        store.insert_time_log(make_log(f"{day.isoformat()}T09:00:00", f"{day.isoformat()}T10:00:00", productivity=5))
        metrics = refresh_daily(store, "u1", day, settings=settings, daily_goal=1)

    assert metrics.streak_days == 3


def test_entry_duration_follows_its_interval():
    entry = make_log("2025-03-04T09:00:00", "2025-03-04T10:30:00", productivity=5)
    assert entry.duration == 90
    assert compute_daily("u1", DAY, [], [entry]).productive_time == 90

    entry.end = entry.end + timedelta(minutes=30)
    assert entry.duration == 120
    assert entry.to_dict()["duration"] == 120
    with pytest.raises(AttributeError):
        entry.duration = 5


def _stored_history(store, days_back, missed=()):
    for offset in range(1, days_back + 1):
        store.upsert_metrics(
            ProductivityMetrics(owner_id="u1", day=DAY - timedelta(days=offset), goal_achieved=offset not in missed)
        )


def test_streak_extends_past_one_history_window(store, settings):
    _stored_history(store, STREAK_WINDOW_DAYS + 9)
    store.insert_time_log(make_log("2025-03-04T09:00:00", "2025-03-04T10:00:00", productivity=5))

    metrics = refresh_daily(store, "u1", DAY, settings=settings, daily_goal=1)
    assert metrics.streak_days == STREAK_WINDOW_DAYS + 10


def test_goal_history_stops_at_first_broken_window(store):
    _stored_history(store, STREAK_WINDOW_DAYS + 9, missed={3})

    history = goal_history(store, "u1", DAY)
    assert len(history) == STREAK_WINDOW_DAYS
    assert trailing_streak(DAY, True, history) == 3
