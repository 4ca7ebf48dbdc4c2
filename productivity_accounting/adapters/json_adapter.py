"""JSON adapter for time logs and todos."""

from __future__ import annotations

import json
from typing import Optional
from zoneinfo import ZoneInfo

from productivity_accounting.adapters.records import time_log_from_mapping, todo_from_mapping
from productivity_accounting.schema import CalendarTodo, TimeLogEntry


def parse(file_path: str, tz: Optional[ZoneInfo] = None) -> tuple[list[TimeLogEntry], list[CalendarTodo]]:
    """Parse ``{"time_logs": [...], "todos": [...]}`` into records; both keys are optional."""

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, dict):
        raise ValueError("JSON payload must be an object with 'time_logs' and/or 'todos' lists")

    time_logs = payload.get("time_logs", [])
    todos = payload.get("todos", [])
    if not isinstance(time_logs, list) or not isinstance(todos, list):
        raise ValueError("'time_logs' and 'todos' must be lists of objects")

    return (
        [time_log_from_mapping(item, f"Time log {i}", tz) for i, item in enumerate(time_logs, start=1)],
        [todo_from_mapping(item, f"Todo {i}", tz) for i, item in enumerate(todos, start=1)],
    )
