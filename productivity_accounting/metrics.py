"""Daily productivity metrics."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable, Optional

from productivity_accounting.config import Settings, get_settings
from productivity_accounting.days import day_bounds
from productivity_accounting.schema import (
    PRODUCTIVE_RATING,
    CalendarTodo,
    CategoryShare,
    ProductivityMetrics,
    TimeLogEntry,
)

if TYPE_CHECKING:
    from productivity_accounting.store import Store

logger = logging.getLogger(__name__)

TODO_WEIGHT = 0.3
TIME_WEIGHT = 0.3
QUALITY_WEIGHT = 0.4

# Days of stored history fetched per step when extending a goal streak backwards.
STREAK_WINDOW_DAYS = 31


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like ``Math.round``: halves go up, not to even."""

    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def percentage(part: float, whole: float) -> int:
    """``round(100 * part / whole)``, or 0 for an empty whole."""

    if not whole:
        return 0
    return int(round_half_up(100.0 * part / whole))


def category_breakdown(entries: Iterable[TimeLogEntry]) -> list[CategoryShare]:
    """Minutes per category in first-seen order, with each bucket's share of the total."""

    totals: dict[str, int] = {}
    for entry in entries:
        totals[entry.category] = totals.get(entry.category, 0) + entry.duration

    grand_total = sum(totals.values())
    return [
        CategoryShare(category=category, duration=minutes, percentage=percentage(minutes, grand_total))
        for category, minutes in totals.items()
    ]


def time_score(productive_minutes: float, daily_goal_hours: float) -> float:
    if daily_goal_hours <= 0:
        return 100.0
    return min(100.0, 100.0 * productive_minutes / (daily_goal_hours * 60))


def productivity_score(
    todo_completion_rate: float,
    productive_minutes: float,
    daily_goal_hours: float,
    avg_productivity: float,
) -> int:
    """Weighted 0-100 composite of todo completion, time against goal and rated quality."""

    quality_score = 100.0 * avg_productivity / 5
    score = (
        TODO_WEIGHT * todo_completion_rate
        + TIME_WEIGHT * time_score(productive_minutes, daily_goal_hours)
        + QUALITY_WEIGHT * quality_score
    )
    return int(round_half_up(score))


def trailing_streak(day: date, goal_achieved: bool, history: Iterable[ProductivityMetrics]) -> int:
    """Consecutive goal days ending at ``day``.

    ``history`` holds earlier daily rows in any order; a missing calendar day
    breaks the run just like a missed goal.
    """

    if not goal_achieved:
        return 0

    achieved = {record.day for record in history if record.goal_achieved}
    streak = 1
    cursor = day - timedelta(days=1)
    while cursor in achieved:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def compute_daily(
    owner_id: str,
    day: date,
    todos: list[CalendarTodo],
    entries: list[TimeLogEntry],
    daily_goal: float = 8.0,
    history: Iterable[ProductivityMetrics] = (),
) -> ProductivityMetrics:
    """Build the metrics row for ``owner_id`` on ``day`` from that day's todos and entries.

    Records of other owners are ignored. The result depends only on its
    inputs, so recomputing with unchanged sources yields an identical row.
    """

    todos = [todo for todo in todos if todo.owner_id == owner_id]
    entries = [entry for entry in entries if entry.owner_id == owner_id and entry.day == day]

    total_todos = len(todos)
    completed_todos = sum(1 for todo in todos if todo.is_completed)
    completion_rate = percentage(completed_todos, total_todos)

    total_time_logged = sum(entry.duration for entry in entries)
    productive_time = sum(entry.duration for entry in entries if entry.productivity >= PRODUCTIVE_RATING)

    if entries:
        avg_productivity = sum(entry.productivity for entry in entries) / len(entries)
        avg_mood = sum(entry.mood for entry in entries) / len(entries)
        avg_energy = sum(entry.energy for entry in entries) / len(entries)
    else:
        avg_productivity = avg_mood = avg_energy = 0.0

    goal_achieved = (productive_time / 60) >= daily_goal

    return ProductivityMetrics(
        owner_id=owner_id,
        day=day,
        total_todos=total_todos,
        completed_todos=completed_todos,
        total_time_logged=total_time_logged,
        productive_time=productive_time,
        avg_productivity=avg_productivity,
        avg_mood=avg_mood,
        avg_energy=avg_energy,
        todo_completion_rate=completion_rate,
        productivity_score=productivity_score(completion_rate, productive_time, daily_goal, avg_productivity),
        category_breakdown=category_breakdown(entries),
        daily_goal=daily_goal,
        goal_achieved=goal_achieved,
        streak_days=trailing_streak(day, goal_achieved, history),
    )


def goal_history(store: "Store", owner_id: str, day: date) -> list[ProductivityMetrics]:
    """Stored rows before ``day`` reaching back only as far as the goal run can.

    Rows are read a window at a time; the walk stops at the first window that
    is not fully achieved, so the cost follows the streak length rather than
    the owner's whole history.
    """

    history: list[ProductivityMetrics] = []
    end = day - timedelta(days=1)
    while True:
        start = end - timedelta(days=STREAK_WINDOW_DAYS - 1)
        rows = store.metrics_between(owner_id, start, end)
        history.extend(rows)
        if sum(1 for record in rows if record.goal_achieved) < STREAK_WINDOW_DAYS:
            return history
        end = start - timedelta(days=1)


def refresh_daily(
    store: "Store",
    owner_id: str,
    day: date,
    settings: Optional[Settings] = None,
    daily_goal: Optional[float] = None,
) -> ProductivityMetrics:
    """Reload the day's sources, recompute its metrics row and upsert it.

    The goal already stored for the day is kept unless ``daily_goal`` is given.
    """

    settings = settings or get_settings()
    start, end = day_bounds(day, settings.tz)

    if daily_goal is None:
        existing = store.get_metrics(owner_id, day)
        daily_goal = existing.daily_goal if existing is not None else settings.default_daily_goal_hours

    todos = store.todos_due_between(owner_id, start, end)
    entries = store.time_logs_on(owner_id, day)

    metrics = compute_daily(owner_id, day, todos, entries, daily_goal=daily_goal)
    if metrics.goal_achieved:
        metrics = replace(metrics, streak_days=trailing_streak(day, True, goal_history(store, owner_id, day)))
    logger.debug(
        "Recomputed metrics for owner %s on %s: score=%d goal_achieved=%s",
        owner_id,
        day.isoformat(),
        metrics.productivity_score,
        metrics.goal_achieved,
    )
    return store.upsert_metrics(metrics)
