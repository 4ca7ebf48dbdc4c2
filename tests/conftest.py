from datetime import datetime, timezone

import pytest

from productivity_accounting.config import Settings
from productivity_accounting.schema import CalendarTodo, TimeLogEntry
from productivity_accounting.store import Store


def at(text: str) -> datetime:
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def make_log(start: str, end: str, owner_id: str = "u1", category: str = "work", productivity: int = 3, **kwargs):
    start_ts, end_ts = at(start), at(end)
    return TimeLogEntry(
        owner_id=owner_id,
        day=start_ts.date(),
        start=start_ts,
        end=end_ts,
        category=category,
        activity=kwargs.pop("activity", "task"),
        productivity=productivity,
        **kwargs,
    )


def make_todo(due: str, owner_id: str = "u1", completed: bool = False, **kwargs):
    todo = CalendarTodo(owner_id=owner_id, title=kwargs.pop("title", "todo"), due_date=at(due), **kwargs)
    if completed:
        todo.set_progress(100, todo.due_date)
    return todo


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", day_timezone="UTC", default_daily_goal_hours=8.0)


@pytest.fixture
def store(settings):
    store = Store(settings=settings)
    yield store
    store.close()
