"""Replay a dataset of todos and time logs through the engine and summarize it."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from productivity_accounting import recurrence, rollups
from productivity_accounting.adapters import csv_adapter, json_adapter
from productivity_accounting.config import Settings
from productivity_accounting.days import day_of, iter_days, month_window, week_window
from productivity_accounting.errors import EngineError
from productivity_accounting.metrics import refresh_daily
from productivity_accounting.schema import CalendarTodo, TimeLogEntry
from productivity_accounting.store import Store

logger = logging.getLogger(__name__)


def load_records(
    data: Optional[str] = None,
    time_logs: Optional[str] = None,
    todos: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
) -> tuple[list[TimeLogEntry], list[CalendarTodo]]:
    """Load a JSON dataset and/or separate time-log and todo CSV files.

    Naive timestamps are read in ``tz``; pass the same ``Settings.tz`` that
    :func:`build_report` buckets days with.
    """

    entries: list[TimeLogEntry] = []
    tasks: list[CalendarTodo] = []
    if data:
        if Path(data).suffix.lower() != ".json":
            raise ValueError("Unsupported dataset format, expected .json")
        entries, tasks = json_adapter.parse(data, tz)
    if time_logs:
        entries = entries + csv_adapter.parse_time_logs(time_logs, tz)
    if todos:
        tasks = tasks + csv_adapter.parse_todos(todos, tz)
    return entries, tasks


def ingest(store: Store, entries: list[TimeLogEntry], todos: list[CalendarTodo]) -> dict:
    """Store todos (expanding recurring ones) and time logs; rejected logs are counted, not fatal."""

    todo_count = 0
    for todo in todos:
        stored = store.insert_todo(todo)
        todo_count += 1
        if recurrence.is_expandable(stored):
            todo_count += len(recurrence.materialize(store, stored))

    accepted = 0
    rejected = 0
    for entry in sorted(entries, key=lambda e: (e.owner_id, e.start)):
        try:
            store.insert_time_log(entry)
            accepted += 1
        except EngineError as exc:
            rejected += 1
            logger.warning("Skipping time log %s-%s for %s: %s", entry.start, entry.end, entry.owner_id, exc.message)

    return {"todos_stored": todo_count, "time_logs_stored": accepted, "time_logs_rejected": rejected}


def _span(entries: list[TimeLogEntry], todos: list[CalendarTodo], settings: Settings) -> Optional[tuple[date, date]]:
    days = [entry.day for entry in entries]
    days.extend(day_of(todo.due_date, settings.tz) for todo in todos)
    if not days:
        return None
    return min(days), max(days)


def build_report(
    store: Store,
    owner_id: str,
    entries: list[TimeLogEntry],
    todos: list[CalendarTodo],
    settings: Settings,
) -> dict:
    """Ingest the owner's records, recompute every day in their span, and roll them up."""

    entries = [entry for entry in entries if entry.owner_id == owner_id]
    todos = [todo for todo in todos if todo.owner_id == owner_id]
    ingestion = ingest(store, entries, todos)

    span = _span(entries, todos, settings)
    if span is None:
        return {"owner_id": owner_id, "ingestion": ingestion, "days": [], "stats": rollups.trend_stats([]).to_dict()}

    first, last = span
    # Ascending order so each day's streak sees the rows before it.
    daily = [refresh_daily(store, owner_id, day, settings=settings) for day in iter_days(first, last)]

    week_start, week_end = week_window(last)
    month_start, month_end = month_window(last)
    week_rows = [record for record in daily if week_start <= record.day <= week_end]
    month_rows = [record for record in daily if month_start <= record.day <= month_end]

    return {
        "owner_id": owner_id,
        "range": {"start": first.isoformat(), "end": last.isoformat()},
        "ingestion": ingestion,
        "days": [record.to_dict() for record in daily],
        "stats": rollups.trend_stats(daily).to_dict(),
        "last_week": rollups.aggregate_range(week_rows).to_dict(),
        "last_month": {
            "aggregate": rollups.aggregate_range(month_rows).to_dict(),
            "weeks": [[record.day.isoformat() for record in week] for week in rollups.group_by_week(month_rows, month_start)],
        },
    }
