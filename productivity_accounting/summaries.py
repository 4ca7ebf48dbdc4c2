"""Category summaries of logged time for a day or a week."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable

from productivity_accounting.metrics import percentage, round_half_up
from productivity_accounting.schema import TimeLogEntry


def _hours(minutes: float) -> float:
    return round_half_up(minutes / 60, 2)


def daily_summary(day: date, entries: Iterable[TimeLogEntry]) -> dict:
    """Per-category totals and average ratings for one day, largest category first."""

    groups: dict[str, list[TimeLogEntry]] = defaultdict(list)
    for entry in entries:
        if entry.day == day:
            groups[entry.category].append(entry)

    total = sum(entry.duration for group in groups.values() for entry in group)
    categories = []
    for category, group in groups.items():
        minutes = sum(entry.duration for entry in group)
        categories.append(
            {
                "category": category,
                "total_duration": minutes,
                "avg_productivity": sum(entry.productivity for entry in group) / len(group),
                "avg_mood": sum(entry.mood for entry in group) / len(group),
                "avg_energy": sum(entry.energy for entry in group) / len(group),
                "count": len(group),
                "percentage": percentage(minutes, total),
                "duration_hours": _hours(minutes),
            }
        )
    categories.sort(key=lambda item: item["total_duration"], reverse=True)

    return {
        "date": day.isoformat(),
        "total_duration": total,
        "total_hours": _hours(total),
        "categories": categories,
    }


def weekly_summary(start: date, entries: Iterable[TimeLogEntry]) -> dict:
    """Minutes per day and category over the seven days starting at ``start``."""

    end = start + timedelta(days=6)
    daily_breakdown: dict[str, dict[str, int]] = {}
    category_totals: dict[str, int] = {}
    for entry in entries:
        if not start <= entry.day <= end:
            continue
        day_key = entry.day.isoformat()
        per_day = daily_breakdown.setdefault(day_key, {})
        per_day[entry.category] = per_day.get(entry.category, 0) + entry.duration
        category_totals[entry.category] = category_totals.get(entry.category, 0) + entry.duration

    total = sum(category_totals.values())
    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "total_duration": total,
        "total_hours": _hours(total),
        "daily_breakdown": daily_breakdown,
        "category_totals": category_totals,
        "weekly_average": round_half_up(total / 7, 2),
    }
