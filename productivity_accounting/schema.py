"""Core records exchanged between the store, the handlers and the engine."""

import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

TIME_LOG_CATEGORIES = (
    "work",
    "study",
    "exercise",
    "sleep",
    "meal",
    "social",
    "entertainment",
    "commute",
    "shopping",
    "chores",
    "break",
    "deepwork",
    "meeting",
    "learning",
    "personal",
    "other",
)
TODO_PRIORITIES = ("low", "medium", "high", "urgent")
TODO_CATEGORIES = ("today", "week", "month", "year", "someday")

RecurrencePattern = Literal["daily", "weekly", "monthly", "yearly"]
RECURRENCE_PATTERNS: tuple[RecurrencePattern, ...] = ("daily", "weekly", "monthly", "yearly")

# Entries rated at or above this count towards productive time.
PRODUCTIVE_RATING = 4


def duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between ``start`` and ``end``; half a minute rounds up."""

    return math.floor((end - start).total_seconds() / 60 + 0.5)


@dataclass
class TimeLogEntry:
    """One logged interval; ``duration`` is read-only and follows start/end."""

    owner_id: str
    day: date
    start: datetime
    end: datetime
    category: str
    activity: str
    productivity: int = 3
    mood: int = 3
    energy: int = 3
    subcategory: str = ""
    notes: str = ""
    linked_todo_id: Optional[int] = None
    is_planned: bool = False
    id: Optional[int] = None

    @property
    def duration(self) -> int:
        return duration_minutes(self.start, self.end)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["duration"] = self.duration
        payload["day"] = self.day.isoformat()
        payload["start"] = self.start.isoformat()
        payload["end"] = self.end.isoformat()
        payload["duration_hours"] = round(self.duration / 60, 2)
        return payload


@dataclass
class CalendarTodo:
    """A dated todo; occurrences of a recurring parent carry ``parent_todo_id``."""

    owner_id: str
    title: str
    due_date: datetime
    completion_percentage: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    priority: str = "medium"
    category: str = "today"
    description: str = ""
    is_recurring: bool = False
    recurring_pattern: Optional[RecurrencePattern] = None
    recurring_end_date: Optional[datetime] = None
    parent_todo_id: Optional[int] = None
    project_id: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def set_progress(self, percentage: float, now: datetime) -> None:
        """Clamp progress to 0-100 and keep ``is_completed``/``completed_at`` in step with it."""

        self.completion_percentage = int(max(0, min(100, math.floor(percentage + 0.5))))
        if self.completion_percentage >= 100 and not self.is_completed:
            self.is_completed = True
            self.completed_at = now
        elif self.completion_percentage < 100 and self.is_completed:
            self.is_completed = False
            self.completed_at = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        for key in ("due_date", "completed_at", "recurring_end_date", "created_at"):
            value = payload[key]
            payload[key] = value.isoformat() if value is not None else None
        return payload


@dataclass
class CategoryShare:
    category: str
    duration: int
    percentage: int


@dataclass
class ProductivityMetrics:
    """Daily aggregate for one owner. Derived state, recomputed whole."""

    owner_id: str
    day: date
    total_todos: int = 0
    completed_todos: int = 0
    total_time_logged: int = 0
    productive_time: int = 0
    avg_productivity: float = 0.0
    avg_mood: float = 0.0
    avg_energy: float = 0.0
    todo_completion_rate: int = 0
    productivity_score: int = 0
    category_breakdown: list[CategoryShare] = field(default_factory=list)
    daily_goal: float = 8.0
    goal_achieved: bool = False
    streak_days: int = 0

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["day"] = self.day.isoformat()
        return payload
