"""CSV adapter for time logs and todos."""

from __future__ import annotations

import csv
from typing import Optional
from zoneinfo import ZoneInfo

from productivity_accounting.adapters.records import time_log_from_mapping, todo_from_mapping
from productivity_accounting.schema import CalendarTodo, TimeLogEntry


def _rows(file_path: str):
    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return
        yield from enumerate(reader, start=2)


def parse_time_logs(file_path: str, tz: Optional[ZoneInfo] = None) -> list[TimeLogEntry]:
    """Parse a time-log CSV; durations are derived from the start/end columns."""

    return [time_log_from_mapping(row, f"Row {row_number}", tz) for row_number, row in _rows(file_path)]


def parse_todos(file_path: str, tz: Optional[ZoneInfo] = None) -> list[CalendarTodo]:
    """Parse a todo CSV."""

    return [todo_from_mapping(row, f"Row {row_number}", tz) for row_number, row in _rows(file_path)]
