"""Request handlers around the engine.

Each handler takes the authenticated owner id and a plain payload mapping
(camelCase keys, as sent by the web and mobile clients), validates it, calls
the engine and returns a plain dict. Expected failures raise
:class:`~productivity_accounting.errors.EngineError` subclasses whose
``status`` is the HTTP status the caller should answer with.

Naive timestamps in payloads are read in ``settings.day_timezone``, the same
zone the metrics use to cut days; ``settings`` defaults to
:func:`~productivity_accounting.config.get_settings`.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Annotated, Any, Mapping, Optional, TypeVar
from zoneinfo import ZoneInfo

import pydantic
from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from productivity_accounting import recurrence, rollups, summaries
from productivity_accounting.config import Settings, get_settings
from productivity_accounting.days import as_utc, month_window, parse_day, week_window
from productivity_accounting.errors import ValidationError
from productivity_accounting.metrics import refresh_daily
from productivity_accounting.schema import (
    TIME_LOG_CATEGORIES,
    TODO_CATEGORIES,
    TODO_PRIORITIES,
    CalendarTodo,
    RecurrencePattern,
    TimeLogEntry,
)
from productivity_accounting.store import Store

logger = logging.getLogger(__name__)

Model = TypeVar("Model", bound=BaseModel)


def _zone(info: ValidationInfo) -> Optional[ZoneInfo]:
    return (info.context or {}).get("tz")


def _day(value: Any, info: ValidationInfo) -> Any:
    if value is None:
        return None
    try:
        return parse_day(value, _zone(info))
    except (TypeError, ValueError) as exc:
        raise ValueError("must be an ISO-8601 date") from exc


def _utc(value: datetime, info: ValidationInfo) -> datetime:
    return as_utc(value, _zone(info))


def _one_of(allowed: tuple[str, ...]):
    def check(value: Optional[str]) -> Optional[str]:
        if value is not None and value not in allowed:
            raise ValueError(f"must be one of {', '.join(allowed)}")
        return value

    return check


Day = Annotated[date, BeforeValidator(_day)]
Timestamp = Annotated[datetime, AfterValidator(_utc)]
LogCategory = Annotated[str, AfterValidator(_one_of(TIME_LOG_CATEGORIES))]
Rating = Annotated[int, Field(ge=1, le=5)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class TimeLogPayload(_Payload):
    day: Day = Field(alias="date")
    start_time: Timestamp = Field(alias="startTime")
    end_time: Timestamp = Field(alias="endTime")
    category: LogCategory
    activity: str = Field(min_length=1, max_length=200)
    subcategory: str = Field("", max_length=100)
    productivity: Rating = 3
    mood: Rating = 3
    energy: Rating = 3
    notes: str = Field("", max_length=500)
    linked_todo_id: Optional[int] = Field(None, alias="linkedTodoId")
    is_planned: bool = Field(False, alias="isPlanned")


class TimeLogUpdate(_Payload):
    day: Optional[Day] = Field(None, alias="date")
    start_time: Optional[Timestamp] = Field(None, alias="startTime")
    end_time: Optional[Timestamp] = Field(None, alias="endTime")
    category: Optional[LogCategory] = None
    activity: Optional[str] = Field(None, min_length=1, max_length=200)
    subcategory: Optional[str] = Field(None, max_length=100)
    productivity: Optional[Rating] = None
    mood: Optional[Rating] = None
    energy: Optional[Rating] = None
    notes: Optional[str] = Field(None, max_length=500)
    linked_todo_id: Optional[int] = Field(None, alias="linkedTodoId")
    is_planned: Optional[bool] = Field(None, alias="isPlanned")


class TodoPayload(_Payload):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    due_date: Timestamp = Field(alias="dueDate")
    completion_percentage: int = Field(0, ge=0, le=100, alias="completionPercentage")
    priority: Annotated[str, AfterValidator(_one_of(TODO_PRIORITIES))] = "medium"
    category: Annotated[str, AfterValidator(_one_of(TODO_CATEGORIES))] = "today"
    is_recurring: bool = Field(False, alias="isRecurring")
    recurring_pattern: Optional[RecurrencePattern] = Field(None, alias="recurringPattern")
    recurring_end_date: Optional[Timestamp] = Field(None, alias="recurringEndDate")
    project_id: Optional[int] = Field(None, alias="projectId")

    @model_validator(mode="after")
    def _recurrence_complete(self) -> "TodoPayload":
        if self.is_recurring and (self.recurring_pattern is None or self.recurring_end_date is None):
            raise ValueError("recurringPattern and recurringEndDate are required when isRecurring is true")
        return self


class GoalPayload(_Payload):
    day: Day = Field(alias="date")
    daily_goal: float = Field(alias="dailyGoal")

    @field_validator("daily_goal")
    @classmethod
    def _within_day(cls, value: float) -> float:
        if not 0 <= value <= 24:
            raise ValueError("Daily goal must be between 0 and 24 hours")
        return value


class DayQuery(_Payload):
    day: Day = Field(alias="date")


class WeekStartQuery(_Payload):
    start_date: Day = Field(alias="startDate")


class RangeQuery(_Payload):
    start_date: Day = Field(alias="startDate")
    end_date: Day = Field(alias="endDate")

    @model_validator(mode="after")
    def _ordered(self) -> "RangeQuery":
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class ProgressPayload(_Payload):
    completion_percentage: float = Field(alias="completionPercentage", allow_inf_nan=False)


def _field_messages(exc: pydantic.ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def parse_payload(model: type[Model], payload: Mapping[str, Any], settings: Optional[Settings] = None) -> Model:
    """Validate ``payload`` into ``model`` or raise the engine's ValidationError."""

    settings = settings or get_settings()
    try:
        return model.model_validate(dict(payload), context={"tz": settings.tz})
    except pydantic.ValidationError as exc:
        raise ValidationError("Validation error", _field_messages(exc)) from exc


# Time logs


def create_time_log(
    store: Store, owner_id: str, payload: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    """Log an interval. Any client-supplied ``duration`` is ignored."""

    data = parse_payload(TimeLogPayload, payload, settings)
    entry = TimeLogEntry(
        owner_id=owner_id,
        day=data.day,
        start=data.start_time,
        end=data.end_time,
        category=data.category,
        subcategory=data.subcategory,
        activity=data.activity,
        productivity=data.productivity,
        mood=data.mood,
        energy=data.energy,
        notes=data.notes,
        linked_todo_id=data.linked_todo_id,
        is_planned=data.is_planned,
    )
    return store.insert_time_log(entry).to_dict()


_UPDATE_FIELDS = {"start_time": "start", "end_time": "end"}
_NULLABLE_FIELDS = {"linked_todo_id"}


def update_time_log(
    store: Store,
    owner_id: str,
    entry_id: int,
    payload: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> dict:
    """Apply a partial update, re-validating the interval against the entry's own day.

    Only keys present in ``payload`` change; ``linkedTodoId: null`` unlinks the todo.
    """

    data = parse_payload(TimeLogUpdate, payload, settings)
    changes = data.model_dump(exclude_unset=True, exclude={"day"})
    cleared = sorted(key for key, value in changes.items() if value is None and key not in _NULLABLE_FIELDS)
    if cleared:
        raise ValidationError(
            "Validation error", [f"{TimeLogUpdate.model_fields[key].alias or key}: may not be null" for key in cleared]
        )

    current = store.get_time_log(owner_id, entry_id)
    if data.day is not None and data.day != current.day:
        raise ValidationError("Validation error", ["date: the day of a time log cannot be changed"])

    for key, value in changes.items():
        setattr(current, _UPDATE_FIELDS.get(key, key), value)
    return store.replace_time_log(current).to_dict()


def delete_time_log(store: Store, owner_id: str, entry_id: int) -> dict:
    store.delete_time_log(owner_id, entry_id)
    return {"message": "Time log deleted successfully"}


def list_time_logs(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> list[dict]:
    day = parse_payload(DayQuery, query, settings).day
    category = query.get("category") or None
    return [entry.to_dict() for entry in store.time_logs_on(owner_id, day, category=category)]


def get_daily_time_summary(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    day = parse_payload(DayQuery, query, settings).day
    return summaries.daily_summary(day, store.time_logs_on(owner_id, day))


def get_weekly_time_summary(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    start = parse_payload(WeekStartQuery, query, settings).start_date
    entries = store.time_logs_between(owner_id, start, start + timedelta(days=6))
    return summaries.weekly_summary(start, entries)


# Todos


def create_todo(
    store: Store,
    owner_id: str,
    payload: Mapping[str, Any],
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> dict:
    """Create a todo; a recurring one also gets its occurrences, best effort."""

    data = parse_payload(TodoPayload, payload, settings)
    todo = CalendarTodo(
        owner_id=owner_id,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        priority=data.priority,
        category=data.category,
        is_recurring=data.is_recurring,
        recurring_pattern=data.recurring_pattern if data.is_recurring else None,
        recurring_end_date=data.recurring_end_date if data.is_recurring else None,
        project_id=data.project_id,
    )
    todo.set_progress(data.completion_percentage, now or datetime.now(timezone.utc))

    todo = store.insert_todo(todo)
    if recurrence.is_expandable(todo):
        created = recurrence.materialize(store, todo)
        logger.info("Todo %s expanded into %d occurrences", todo.id, len(created))
    return todo.to_dict()


def update_todo_progress(
    store: Store,
    owner_id: str,
    todo_id: int,
    payload: Mapping[str, Any],
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> dict:
    data = parse_payload(ProgressPayload, payload, settings)
    todo = store.get_todo(owner_id, todo_id)
    todo.set_progress(data.completion_percentage, now or datetime.now(timezone.utc))
    return store.save_todo(todo).to_dict()


def list_recurring_todos(store: Store, owner_id: str) -> list[dict]:
    return [todo.to_dict() for todo in store.recurring_todos(owner_id)]


# Productivity metrics


def get_daily_metrics(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    """Metrics for one day, recomputed from the current todos and time logs."""

    settings = settings or get_settings()
    day = parse_payload(DayQuery, query, settings).day
    return refresh_daily(store, owner_id, day, settings=settings).to_dict()


def refresh_daily_metrics(
    store: Store, owner_id: str, payload: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    settings = settings or get_settings()
    day = parse_payload(DayQuery, payload, settings).day
    metrics = refresh_daily(store, owner_id, day, settings=settings)
    return {"message": "Daily metrics updated successfully", "metrics": metrics.to_dict()}


def set_daily_goal(
    store: Store, owner_id: str, payload: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    """Store a new goal for the day and recompute the row against it."""

    settings = settings or get_settings()
    data = parse_payload(GoalPayload, payload, settings)
    metrics = refresh_daily(store, owner_id, data.day, settings=settings, daily_goal=data.daily_goal)
    return {"message": "Daily goal updated successfully", "metrics": metrics.to_dict()}


def get_trends(store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None) -> dict:
    data = parse_payload(RangeQuery, query, settings)
    records = store.metrics_between(owner_id, data.start_date, data.end_date)
    return {
        "trends": [record.to_dict() for record in records],
        "stats": rollups.trend_stats(records).to_dict(),
        "date_range": {"start_date": data.start_date.isoformat(), "end_date": data.end_date.isoformat()},
    }


def get_weekly_metrics(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    start, end = week_window(parse_payload(DayQuery, query, settings).day)
    records = store.metrics_between(owner_id, start, end)
    return {
        "week_range": {"start": start.isoformat(), "end": end.isoformat()},
        "aggregate_metrics": rollups.aggregate_range(records).to_dict(),
        "daily_breakdown": [record.to_dict() for record in records],
    }


def get_monthly_metrics(
    store: Store, owner_id: str, query: Mapping[str, Any], settings: Optional[Settings] = None
) -> dict:
    start, end = month_window(parse_payload(DayQuery, query, settings).day)
    records = store.metrics_between(owner_id, start, end)
    return {
        "month_range": {"start": start.isoformat(), "end": end.isoformat()},
        "aggregate_metrics": rollups.aggregate_range(records).to_dict(),
        "daily_breakdown": [record.to_dict() for record in records],
        "weekly_breakdown": [
            [record.to_dict() for record in week] for week in rollups.group_by_week(records, start)
        ],
    }
