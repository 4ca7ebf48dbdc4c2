"""Weekly/monthly rollups and trend statistics over daily metrics rows."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Literal, Sequence

import numpy as np

from productivity_accounting.days import week_window
from productivity_accounting.metrics import round_half_up
from productivity_accounting.schema import ProductivityMetrics

Trend = Literal["improving", "declining", "stable"]

# Minimum number of days before a trend direction is reported.
TREND_MIN_RECORDS = 4
# Score difference between halves that counts as a real change.
TREND_THRESHOLD = 5


@dataclass
class RangeRollup:
    avg_productivity_score: float = 0.0
    avg_todo_completion: float = 0.0
    avg_productivity: float = 0.0
    avg_mood: float = 0.0
    avg_energy: float = 0.0
    total_productive_time: int = 0
    total_time_logged: int = 0
    total_todos: int = 0
    total_completed_todos: int = 0
    goals_achieved: int = 0
    days_tracked: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrendStats:
    average_productivity_score: int = 0
    average_todo_completion: int = 0
    average_mood: float = 0.0
    average_energy: float = 0.0
    total_productive_hours: float = 0.0
    streak: int = 0
    trend: Trend = "stable"

    def to_dict(self) -> dict:
        return asdict(self)


def _column(records: Sequence[ProductivityMetrics], name: str) -> np.ndarray:
    return np.asarray([getattr(record, name) or 0 for record in records], dtype=float)


def aggregate_range(records: Sequence[ProductivityMetrics]) -> RangeRollup:
    """Average the rates and scores, sum the counts and minutes of ``records``."""

    if not records:
        return RangeRollup()

    return RangeRollup(
        avg_productivity_score=float(np.mean(_column(records, "productivity_score"))),
        avg_todo_completion=float(np.mean(_column(records, "todo_completion_rate"))),
        avg_productivity=float(np.mean(_column(records, "avg_productivity"))),
        avg_mood=float(np.mean(_column(records, "avg_mood"))),
        avg_energy=float(np.mean(_column(records, "avg_energy"))),
        total_productive_time=sum(record.productive_time for record in records),
        total_time_logged=sum(record.total_time_logged for record in records),
        total_todos=sum(record.total_todos for record in records),
        total_completed_todos=sum(record.completed_todos for record in records),
        goals_achieved=sum(1 for record in records if record.goal_achieved),
        days_tracked=len(records),
    )


def group_by_week(records: Sequence[ProductivityMetrics], month_start: date) -> list[list[ProductivityMetrics]]:
    """Split a month's rows into Sunday-aligned weeks, dropping empty weeks.

    Week 0 starts on the Sunday on or before ``month_start``.
    """

    week_start, _ = week_window(month_start)
    weeks: dict[int, list[ProductivityMetrics]] = defaultdict(list)
    for record in records:
        index = (record.day - week_start).days // 7
        if index >= 0:
            weeks[index].append(record)
    return [weeks[index] for index in sorted(weeks)]


def goal_streak(records: Sequence[ProductivityMetrics]) -> int:
    """Goal-achieved days counted backward from the last record, up to the first miss."""

    streak = 0
    for record in reversed(records):
        if not record.goal_achieved:
            break
        streak += 1
    return streak


def trend_direction(records: Sequence[ProductivityMetrics]) -> Trend:
    """Compare the mean score of the later half of ``records`` with the earlier half."""

    if len(records) < TREND_MIN_RECORDS:
        return "stable"

    scores = _column(records, "productivity_score")
    mid = len(scores) // 2
    difference = float(np.mean(scores[mid:]) - np.mean(scores[:mid]))
    if difference > TREND_THRESHOLD:
        return "improving"
    if difference < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def trend_stats(records: Sequence[ProductivityMetrics]) -> TrendStats:
    """Averages, goal streak and trend for ``records`` ordered by ascending day."""

    if not records:
        return TrendStats()

    def mean(name: str) -> float:
        return float(np.mean(_column(records, name)))

    productive_minutes = float(np.sum(_column(records, "productive_time")))
    return TrendStats(
        average_productivity_score=int(round_half_up(mean("productivity_score"))),
        average_todo_completion=int(round_half_up(mean("todo_completion_rate"))),
        average_mood=round_half_up(mean("avg_mood"), 1),
        average_energy=round_half_up(mean("avg_energy"), 1),
        total_productive_hours=round_half_up(productive_minutes / 60, 1),
        streak=goal_streak(records),
        trend=trend_direction(records),
    )
