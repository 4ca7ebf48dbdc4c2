"""Build engine records from flat mappings (CSV rows, JSON objects)."""

from __future__ import annotations

from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from productivity_accounting.days import parse_day, parse_timestamp
from productivity_accounting.schema import (
    RECURRENCE_PATTERNS,
    TIME_LOG_CATEGORIES,
    TODO_CATEGORIES,
    TODO_PRIORITIES,
    CalendarTodo,
    TimeLogEntry,
)

TIME_LOG_FIELDS = {"owner_id", "date", "start_time", "end_time", "category", "activity"}
TODO_FIELDS = {"owner_id", "title", "due_date"}

_TRUE = {"1", "true", "yes", "y"}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(item: Mapping[str, Any], fields: set[str], label: str) -> None:
    if not isinstance(item, Mapping):
        raise ValueError(f"{label}: expected an object")
    missing = sorted(field for field in fields if _blank(item.get(field)))
    if missing:
        raise ValueError(f"{label}: missing required fields {missing}")


def _timestamp(item: Mapping[str, Any], key: str, label: str, tz: Optional[ZoneInfo]):
    try:
        return parse_timestamp(item[key], tz)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label}: malformed {key}") from exc


def _rating(item: Mapping[str, Any], key: str, label: str) -> int:
    raw = item.get(key)
    if _blank(raw):
        return 3
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label}: invalid {key}") from exc
    if not 1 <= value <= 5:
        raise ValueError(f"{label}: {key} must be between 1 and 5")
    return value


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUE


def _optional_int(item: Mapping[str, Any], key: str, label: str) -> Optional[int]:
    raw = item.get(key)
    if _blank(raw):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label}: invalid {key}") from exc


def time_log_from_mapping(item: Mapping[str, Any], label: str, tz: Optional[ZoneInfo] = None) -> TimeLogEntry:
    """Naive timestamps are read in ``tz``, the day-bucketing zone."""

    _require(item, TIME_LOG_FIELDS, label)

    try:
        day = parse_day(item["date"], tz)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label}: malformed date") from exc
    start = _timestamp(item, "start_time", label, tz)
    end = _timestamp(item, "end_time", label, tz)
    if end <= start:
        raise ValueError(f"{label}: end_time must be after start_time")

    category = str(item["category"]).strip()
    if category not in TIME_LOG_CATEGORIES:
        raise ValueError(f"{label}: invalid category '{category}'")

    return TimeLogEntry(
        owner_id=str(item["owner_id"]).strip(),
        day=day,
        start=start,
        end=end,
        category=category,
        subcategory=str(item.get("subcategory") or "").strip(),
        activity=str(item["activity"]).strip(),
        productivity=_rating(item, "productivity", label),
        mood=_rating(item, "mood", label),
        energy=_rating(item, "energy", label),
        notes=str(item.get("notes") or "").strip(),
        linked_todo_id=_optional_int(item, "linked_todo_id", label),
        is_planned=_flag(item.get("is_planned")),
    )


def todo_from_mapping(item: Mapping[str, Any], label: str, tz: Optional[ZoneInfo] = None) -> CalendarTodo:
    _require(item, TODO_FIELDS, label)

    due_date = _timestamp(item, "due_date", label, tz)
    priority = str(item.get("priority") or "medium").strip()
    if priority not in TODO_PRIORITIES:
        raise ValueError(f"{label}: invalid priority '{priority}'")
    category = str(item.get("category") or "today").strip()
    if category not in TODO_CATEGORIES:
        raise ValueError(f"{label}: invalid category '{category}'")

    is_recurring = _flag(item.get("is_recurring"))
    pattern = None
    end_date = None
    if is_recurring:
        pattern = str(item.get("recurring_pattern") or "").strip()
        if pattern not in RECURRENCE_PATTERNS:
            raise ValueError(f"{label}: invalid recurring_pattern '{pattern}'")
        if _blank(item.get("recurring_end_date")):
            raise ValueError(f"{label}: recurring_end_date is required for recurring todos")
        end_date = _timestamp(item, "recurring_end_date", label, tz)

    todo = CalendarTodo(
        owner_id=str(item["owner_id"]).strip(),
        title=str(item["title"]).strip(),
        description=str(item.get("description") or "").strip(),
        due_date=due_date,
        priority=priority,
        category=category,
        is_recurring=is_recurring,
        recurring_pattern=pattern,
        recurring_end_date=end_date,
        project_id=_optional_int(item, "project_id", label),
    )
    completion = _optional_int(item, "completion_percentage", label) or 0
    todo.set_progress(completion, due_date)
    return todo
