"""SQLAlchemy persistence for time logs, todos and daily metrics.

Every read and write is scoped by owner id. Timestamps are stored as naive
UTC and handed back as aware UTC.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from productivity_accounting import intervals
from productivity_accounting.config import Settings, get_settings
from productivity_accounting.errors import NotFoundError
from productivity_accounting.schema import CalendarTodo, CategoryShare, ProductivityMetrics, TimeLogEntry

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class TimeLogRow(Base):
    __tablename__ = "time_logs"
    __table_args__ = (
        Index("ix_time_logs_owner_day_start", "owner_id", "day", "start"),
        Index("ix_time_logs_owner_category_day", "owner_id", "category", "day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(100), default="")
    activity: Mapped[str] = mapped_column(String(200), nullable=False)
    productivity: Mapped[int] = mapped_column(Integer, default=3)
    mood: Mapped[int] = mapped_column(Integer, default=3)
    energy: Mapped[int] = mapped_column(Integer, default=3)
    notes: Mapped[str] = mapped_column(Text, default="")
    linked_todo_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_planned: Mapped[bool] = mapped_column(Boolean, default=False)


class TodoRow(Base):
    __tablename__ = "calendar_todos"
    __table_args__ = (
        Index("ix_calendar_todos_owner_due", "owner_id", "due_date", "category"),
        Index("ix_calendar_todos_owner_parent", "owner_id", "parent_todo_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completion_percentage: Mapped[int] = mapped_column(Integer, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), default="medium")
    category: Mapped[str] = mapped_column(String(16), default="today")
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurring_pattern: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    recurring_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    parent_todo_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    project_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MetricsRow(Base):
    __tablename__ = "productivity_metrics"
    __table_args__ = (UniqueConstraint("owner_id", "day", name="uq_productivity_metrics_owner_day"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    total_todos: Mapped[int] = mapped_column(Integer, default=0)
    completed_todos: Mapped[int] = mapped_column(Integer, default=0)
    total_time_logged: Mapped[int] = mapped_column(Integer, default=0)
    productive_time: Mapped[int] = mapped_column(Integer, default=0)
    avg_productivity: Mapped[float] = mapped_column(Float, default=0.0)
    avg_mood: Mapped[float] = mapped_column(Float, default=0.0)
    avg_energy: Mapped[float] = mapped_column(Float, default=0.0)
    todo_completion_rate: Mapped[int] = mapped_column(Integer, default=0)
    productivity_score: Mapped[int] = mapped_column(Integer, default=0)
    category_breakdown: Mapped[list] = mapped_column(JSON, default=list)
    daily_goal: Mapped[float] = mapped_column(Float, default=8.0)
    goal_achieved: Mapped[bool] = mapped_column(Boolean, default=False)
    streak_days: Mapped[int] = mapped_column(Integer, default=0)


def _to_db(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    return ts.replace(tzinfo=timezone.utc)


def _time_log_from_row(row: TimeLogRow) -> TimeLogEntry:
    return TimeLogEntry(
        id=row.id,
        owner_id=row.owner_id,
        day=row.day,
        start=_from_db(row.start),
        end=_from_db(row.end),
        category=row.category,
        subcategory=row.subcategory or "",
        activity=row.activity,
        productivity=row.productivity,
        mood=row.mood,
        energy=row.energy,
        notes=row.notes or "",
        linked_todo_id=row.linked_todo_id,
        is_planned=bool(row.is_planned),
    )


def _apply_time_log(row: TimeLogRow, entry: TimeLogEntry) -> None:
    row.owner_id = entry.owner_id
    row.day = entry.day
    row.start = _to_db(entry.start)
    row.end = _to_db(entry.end)
    row.duration = entry.duration
    row.category = entry.category
    row.subcategory = entry.subcategory
    row.activity = entry.activity
    row.productivity = entry.productivity
    row.mood = entry.mood
    row.energy = entry.energy
    row.notes = entry.notes
    row.linked_todo_id = entry.linked_todo_id
    row.is_planned = entry.is_planned


def _todo_from_row(row: TodoRow) -> CalendarTodo:
    return CalendarTodo(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description or "",
        due_date=_from_db(row.due_date),
        completion_percentage=row.completion_percentage,
        is_completed=bool(row.is_completed),
        completed_at=_from_db(row.completed_at),
        priority=row.priority,
        category=row.category,
        is_recurring=bool(row.is_recurring),
        recurring_pattern=row.recurring_pattern,
        recurring_end_date=_from_db(row.recurring_end_date),
        parent_todo_id=row.parent_todo_id,
        project_id=row.project_id,
        created_at=_from_db(row.created_at),
    )


def _apply_todo(row: TodoRow, todo: CalendarTodo) -> None:
    row.owner_id = todo.owner_id
    row.title = todo.title
    row.description = todo.description
    row.due_date = _to_db(todo.due_date)
    row.completion_percentage = todo.completion_percentage
    row.is_completed = todo.is_completed
    row.completed_at = _to_db(todo.completed_at)
    row.priority = todo.priority
    row.category = todo.category
    row.is_recurring = todo.is_recurring
    row.recurring_pattern = todo.recurring_pattern
    row.recurring_end_date = _to_db(todo.recurring_end_date)
    row.parent_todo_id = todo.parent_todo_id
    row.project_id = todo.project_id


def _metrics_from_row(row: MetricsRow) -> ProductivityMetrics:
    return ProductivityMetrics(
        owner_id=row.owner_id,
        day=row.day,
        total_todos=row.total_todos,
        completed_todos=row.completed_todos,
        total_time_logged=row.total_time_logged,
        productive_time=row.productive_time,
        avg_productivity=row.avg_productivity,
        avg_mood=row.avg_mood,
        avg_energy=row.avg_energy,
        todo_completion_rate=row.todo_completion_rate,
        productivity_score=row.productivity_score,
        category_breakdown=[CategoryShare(**share) for share in row.category_breakdown or []],
        daily_goal=row.daily_goal,
        goal_achieved=bool(row.goal_achieved),
        streak_days=row.streak_days,
    )


def _apply_metrics(row: MetricsRow, metrics: ProductivityMetrics) -> None:
    row.owner_id = metrics.owner_id
    row.day = metrics.day
    row.total_todos = metrics.total_todos
    row.completed_todos = metrics.completed_todos
    row.total_time_logged = metrics.total_time_logged
    row.productive_time = metrics.productive_time
    row.avg_productivity = metrics.avg_productivity
    row.avg_mood = metrics.avg_mood
    row.avg_energy = metrics.avg_energy
    row.todo_completion_rate = metrics.todo_completion_rate
    row.productivity_score = metrics.productivity_score
    row.category_breakdown = [
        {"category": share.category, "duration": share.duration, "percentage": share.percentage}
        for share in metrics.category_breakdown
    ]
    row.daily_goal = metrics.daily_goal
    row.goal_achieved = metrics.goal_achieved
    row.streak_days = metrics.streak_days


def _serialize_sqlite_writes(engine) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock up front
    # so a read-validate-insert sequence cannot interleave with another writer.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Store:
    """Owner-scoped repository over one SQLAlchemy engine."""

    def __init__(self, url: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        url = url or settings.database_url

        options: dict = {"echo": settings.sql_echo}
        if url.startswith("sqlite"):
            # Writers queue on the database lock for up to `timeout` seconds.
            options["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool

        self.engine = create_engine(url, **options)
        if self.engine.dialect.name == "sqlite":
            _serialize_sqlite_writes(self.engine)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self._sessions() as session, session.begin():
            if self.engine.dialect.name != "sqlite":
                session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
            yield session

    def close(self) -> None:
        self.engine.dispose()

    # Time logs

    def insert_time_log(self, entry: TimeLogEntry) -> TimeLogEntry:
        """Validate ``entry`` against its owner's day and insert it in one transaction."""

        with self.transaction() as session:
            existing = self._time_logs_on(session, entry.owner_id, entry.day)
            duration = intervals.validate(entry.owner_id, entry.day, entry.start, entry.end, existing)

            row = TimeLogRow()
            _apply_time_log(row, entry)
            row.duration = duration
            session.add(row)
            session.flush()
            logger.debug("Stored time log %s for owner %s on %s (%d min)", row.id, row.owner_id, row.day, duration)
            return _time_log_from_row(row)

    def replace_time_log(self, entry: TimeLogEntry) -> TimeLogEntry:
        """Overwrite a stored entry after re-validating it against the stored day.

        Owner and day always come from the stored row.
        """

        with self.transaction() as session:
            row = self._time_log_row(session, entry.owner_id, entry.id)
            existing = self._time_logs_on(session, row.owner_id, row.day)
            duration = intervals.validate(row.owner_id, row.day, entry.start, entry.end, existing, exclude_id=row.id)

            owner_id, day = row.owner_id, row.day
            _apply_time_log(row, entry)
            row.owner_id, row.day = owner_id, day
            row.duration = duration
            session.flush()
            return _time_log_from_row(row)

    def delete_time_log(self, owner_id: str, entry_id: int) -> None:
        with self.transaction() as session:
            session.delete(self._time_log_row(session, owner_id, entry_id))

    def get_time_log(self, owner_id: str, entry_id: int) -> TimeLogEntry:
        with self.transaction() as session:
            return _time_log_from_row(self._time_log_row(session, owner_id, entry_id))

    def time_logs_on(self, owner_id: str, day: date, category: Optional[str] = None) -> list[TimeLogEntry]:
        with self.transaction() as session:
            return self._time_logs_on(session, owner_id, day, category)

    def time_logs_between(self, owner_id: str, start_day: date, end_day: date) -> list[TimeLogEntry]:
        """Entries whose day lies in ``[start_day, end_day]``, ordered by day and start."""

        with self.transaction() as session:
            rows = session.scalars(
                select(TimeLogRow)
                .where(TimeLogRow.owner_id == owner_id, TimeLogRow.day >= start_day, TimeLogRow.day <= end_day)
                .order_by(TimeLogRow.day, TimeLogRow.start)
            )
            return [_time_log_from_row(row) for row in rows]

    def _time_log_row(self, session: Session, owner_id: str, entry_id: Optional[int]) -> TimeLogRow:
        row = session.scalar(select(TimeLogRow).where(TimeLogRow.id == entry_id, TimeLogRow.owner_id == owner_id))
        if row is None:
            raise NotFoundError("Time log not found")
        return row

    def _time_logs_on(
        self, session: Session, owner_id: str, day: date, category: Optional[str] = None
    ) -> list[TimeLogEntry]:
        query = select(TimeLogRow).where(TimeLogRow.owner_id == owner_id, TimeLogRow.day == day)
        if category:
            query = query.where(TimeLogRow.category == category)
        return [_time_log_from_row(row) for row in session.scalars(query.order_by(TimeLogRow.start))]

    # Todos

    def insert_todo(self, todo: CalendarTodo) -> CalendarTodo:
        return self.insert_todos([todo])[0]

    def insert_todos(self, todos: list[CalendarTodo]) -> list[CalendarTodo]:
        """Insert ``todos`` in one transaction; either all are stored or none."""

        now = datetime.now(timezone.utc).replace(tzinfo=None)
        with self.transaction() as session:
            rows = []
            for todo in todos:
                row = TodoRow()
                _apply_todo(row, todo)
                row.created_at = now
                rows.append(row)
            session.add_all(rows)
            session.flush()
            return [_todo_from_row(row) for row in rows]

    def get_todo(self, owner_id: str, todo_id: int) -> CalendarTodo:
        with self.transaction() as session:
            return _todo_from_row(self._todo_row(session, owner_id, todo_id))

    def save_todo(self, todo: CalendarTodo) -> CalendarTodo:
        with self.transaction() as session:
            row = self._todo_row(session, todo.owner_id, todo.id)
            _apply_todo(row, todo)
            session.flush()
            return _todo_from_row(row)

    def todos_due_between(self, owner_id: str, start: datetime, end: datetime) -> list[CalendarTodo]:
        """Todos due in the half-open window ``[start, end)``."""

        with self.transaction() as session:
            rows = session.scalars(
                select(TodoRow)
                .where(
                    TodoRow.owner_id == owner_id,
                    TodoRow.due_date >= _to_db(start),
                    TodoRow.due_date < _to_db(end),
                )
                .order_by(TodoRow.due_date, TodoRow.id)
            )
            return [_todo_from_row(row) for row in rows]

    def recurring_todos(self, owner_id: str) -> list[CalendarTodo]:
        """Defining parents of recurring todos, newest first."""

        with self.transaction() as session:
            rows = session.scalars(
                select(TodoRow)
                .where(
                    TodoRow.owner_id == owner_id,
                    TodoRow.is_recurring.is_(True),
                    TodoRow.parent_todo_id.is_(None),
                )
                .order_by(TodoRow.created_at.desc(), TodoRow.id.desc())
            )
            return [_todo_from_row(row) for row in rows]

    def occurrences_of(self, owner_id: str, parent_id: int) -> list[CalendarTodo]:
        with self.transaction() as session:
            rows = session.scalars(
                select(TodoRow)
                .where(TodoRow.owner_id == owner_id, TodoRow.parent_todo_id == parent_id)
                .order_by(TodoRow.due_date)
            )
            return [_todo_from_row(row) for row in rows]

    def _todo_row(self, session: Session, owner_id: str, todo_id: Optional[int]) -> TodoRow:
        row = session.scalar(select(TodoRow).where(TodoRow.id == todo_id, TodoRow.owner_id == owner_id))
        if row is None:
            raise NotFoundError("Todo not found")
        return row

    # Daily metrics

    def get_metrics(self, owner_id: str, day: date) -> Optional[ProductivityMetrics]:
        with self.transaction() as session:
            row = self._metrics_row(session, owner_id, day)
            return _metrics_from_row(row) if row is not None else None

    def upsert_metrics(self, metrics: ProductivityMetrics) -> ProductivityMetrics:
        """Insert or fully replace the row keyed by owner and day."""

        with self.transaction() as session:
            row = self._metrics_row(session, metrics.owner_id, metrics.day)
            if row is None:
                row = MetricsRow()
                session.add(row)
            _apply_metrics(row, metrics)
            session.flush()
            return _metrics_from_row(row)

    def metrics_between(self, owner_id: str, start_day: date, end_day: date) -> list[ProductivityMetrics]:
        """Rows with day in ``[start_day, end_day]`` in ascending day order."""

        with self.transaction() as session:
            rows = session.scalars(
                select(MetricsRow)
                .where(MetricsRow.owner_id == owner_id, MetricsRow.day >= start_day, MetricsRow.day <= end_day)
                .order_by(MetricsRow.day)
            )
            return [_metrics_from_row(row) for row in rows]

    def _metrics_row(self, session: Session, owner_id: str, day: date) -> Optional[MetricsRow]:
        return session.scalar(select(MetricsRow).where(MetricsRow.owner_id == owner_id, MetricsRow.day == day))
