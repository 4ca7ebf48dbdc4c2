"""Expansion of recurring todos into dated occurrences."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterator, assert_never

from dateutil.relativedelta import relativedelta

from productivity_accounting.schema import CalendarTodo, RecurrencePattern

if TYPE_CHECKING:
    from productivity_accounting.store import Store

logger = logging.getLogger(__name__)


def step(anchor: datetime, pattern: RecurrencePattern, count: int) -> datetime:
    """Return ``anchor`` advanced by ``count`` pattern steps.

    Month and year steps clamp to the last valid day (Jan 31 + 1 month is
    Feb 28/29) and are always measured from ``anchor``, so one short month
    does not pull every later occurrence back.
    """

    match pattern:
        case "daily":
            return anchor + relativedelta(days=count)
        case "weekly":
            return anchor + relativedelta(weeks=count)
        case "monthly":
            return anchor + relativedelta(months=count)
        case "yearly":
            return anchor + relativedelta(years=count)
        case _:
            assert_never(pattern)


def is_expandable(todo: CalendarTodo) -> bool:
    return bool(todo.is_recurring and todo.recurring_pattern and todo.recurring_end_date)


def expand(parent: CalendarTodo) -> Iterator[CalendarTodo]:
    """Yield one occurrence per step after the parent's own due date, up to the end date.

    The end date is inclusive. Occurrences copy the parent, drop its identity,
    start with no progress, are not recurring themselves and point back at it
    through ``parent_todo_id``.

    Occurrence k is ``step(due_date, pattern, k)``, always measured from the
    parent's due date rather than from the previous occurrence. A parent due
    Jan 31 therefore yields Feb 28 and then Mar 31; advancing a running cursor
    would have carried the clamp forward and produced Mar 28.
    """

    if not is_expandable(parent):
        return

    count = 1
    cursor = step(parent.due_date, parent.recurring_pattern, count)
    while cursor <= parent.recurring_end_date:
        yield replace(
            parent,
            id=None,
            due_date=cursor,
            parent_todo_id=parent.id,
            is_recurring=False,
            completion_percentage=0,
            is_completed=False,
            completed_at=None,
        )
        count += 1
        cursor = step(parent.due_date, parent.recurring_pattern, count)


def materialize(store: "Store", parent: CalendarTodo) -> list[CalendarTodo]:
    """Insert every occurrence of ``parent`` in one batch.

    Runs after the parent is committed. A failure here is logged and leaves
    the parent untouched; the caller that created the parent never sees it.
    """

    try:
        occurrences = list(expand(parent))
        if not occurrences:
            return []
        inserted = store.insert_todos(occurrences)
    except Exception:  # noqa: BLE001
        logger.exception("Error creating recurring instances for todo %s", parent.id)
        return []

    logger.debug("Created %d occurrences for todo %s", len(inserted), parent.id)
    return inserted
