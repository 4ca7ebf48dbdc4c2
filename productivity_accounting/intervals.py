"""Time-log interval validation and duration derivation."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from productivity_accounting.errors import OverlapError, RangeError
from productivity_accounting.schema import TimeLogEntry, duration_minutes

logger = logging.getLogger(__name__)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap test: touching intervals do not overlap."""

    return start_a < end_b and end_a > start_b


def find_overlap(
    start: datetime,
    end: datetime,
    existing: Iterable[TimeLogEntry],
    exclude_id: Optional[int] = None,
) -> Optional[TimeLogEntry]:
    for entry in existing:
        if exclude_id is not None and entry.id == exclude_id:
            continue
        if overlaps(entry.start, entry.end, start, end):
            return entry
    return None


def validate(
    owner_id: str,
    day: date,
    start: datetime,
    end: datetime,
    existing: Iterable[TimeLogEntry],
    exclude_id: Optional[int] = None,
) -> int:
    """Return the duration of ``[start, end)`` or raise if it is inverted or overlaps.

    ``existing`` is the owner's entries for ``day``; entries belonging to another
    owner or day are ignored so a caller cannot widen the check by accident.
    """

    if end <= start:
        raise RangeError("end must be after start", ["endTime: end must be after start"])

    same_day = (entry for entry in existing if entry.owner_id == owner_id and entry.day == day)
    clash = find_overlap(start, end, same_day, exclude_id=exclude_id)
    if clash is not None:
        logger.info(
            "Rejected interval %s-%s for owner %s on %s: overlaps entry %s",
            start.isoformat(),
            end.isoformat(),
            owner_id,
            day.isoformat(),
            clash.id,
        )
        raise OverlapError(conflicting_id=clash.id)

    return duration_minutes(start, end)
