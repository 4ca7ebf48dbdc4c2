"""Streamlit dashboard for productivity-accounting."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

from productivity_accounting.adapters import csv_adapter
from productivity_accounting.config import Settings
from productivity_accounting.report import build_report, load_records
from productivity_accounting.store import Store

DEMO_TIME_LOGS = "examples/sample_time_logs.csv"
DEMO_TODOS = "examples/sample_todos.csv"


def _save_uploaded(uploaded_file) -> str:
    suffix = Path(uploaded_file.name).suffix.lower()
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as handle:
        handle.write(uploaded_file.getbuffer())
        return handle.name


def _load_uploaded(time_log_file, todo_file, dataset_file, settings: Settings) -> tuple[list, list]:
    if dataset_file is not None:
        return load_records(data=_save_uploaded(dataset_file), tz=settings.tz)
    entries = csv_adapter.parse_time_logs(_save_uploaded(time_log_file), settings.tz) if time_log_file is not None else []
    todos = csv_adapter.parse_todos(_save_uploaded(todo_file), settings.tz) if todo_file is not None else []
    return entries, todos


def _fmt_minutes(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60:02d}m"


def engine_settings(daily_goal: float, day_timezone: str) -> Settings:
    """In-memory settings for one dashboard run; records must be loaded with the same ``tz``."""

    return Settings(
        database_url="sqlite://",
        default_daily_goal_hours=daily_goal,
        day_timezone=day_timezone,
    )


def run_engine(entries: list, todos: list, owner_id: str, settings: Settings) -> dict[str, Any]:
    """Replay the records in a throwaway in-memory store and return a UI-friendly report."""

    store = Store(settings=settings)
    try:
        return build_report(store, owner_id, entries, todos, settings)
    finally:
        store.close()


def main() -> None:
    import streamlit as st

    st.set_page_config(page_title="Productivity Accounting", layout="wide")
    st.title("Productivity Accounting Dashboard")

    with st.sidebar:
        st.header("Data")
        use_demo = st.checkbox("Load demo dataset", value=True)
        dataset_file = st.file_uploader("JSON dataset", type=["json"])
        time_log_file = st.file_uploader("Time-log CSV", type=["csv"])
        todo_file = st.file_uploader("Todo CSV", type=["csv"])
        owner_id = st.text_input("Owner id", value="demo")
        daily_goal = st.slider("Daily goal (productive hours)", min_value=0.0, max_value=24.0, value=8.0, step=0.5)
        day_timezone = st.text_input("Day timezone", value="UTC")
        run = st.button("Compute metrics", type="primary")

    if not run:
        st.info("Pick a dataset in the sidebar and click **Compute metrics**.")
        return

    try:
        settings = engine_settings(daily_goal, day_timezone.strip() or "UTC")
        if use_demo:
            entries, todos = load_records(time_logs=DEMO_TIME_LOGS, todos=DEMO_TODOS, tz=settings.tz)
        elif dataset_file is not None or time_log_file is not None or todo_file is not None:
            entries, todos = _load_uploaded(time_log_file, todo_file, dataset_file, settings)
        else:
            st.error("Please upload a dataset or enable 'Load demo dataset'.")
            return

        report = run_engine(entries, todos, owner_id.strip(), settings)
        if not report["days"]:
            st.error(f"No records found for owner '{owner_id}'.")
            return

        ingestion = report["ingestion"]
        st.success(
            f"Stored {ingestion['time_logs_stored']} time logs and {ingestion['todos_stored']} todos "
            f"({ingestion['time_logs_rejected']} overlapping logs skipped)."
        )

        st.subheader("A) Trend")
        stats = report["stats"]
        c1, c2, c3, c4, c5 = st.columns(5)
        c1.metric("Avg score", stats["average_productivity_score"])
        c2.metric("Avg completion", f"{stats['average_todo_completion']}%")
        c3.metric("Productive hours", stats["total_productive_hours"])
        c4.metric("Goal streak", stats["streak"])
        c5.metric("Trend", stats["trend"])

        st.subheader("B) Daily metrics")
        st.table(
            [
                {
                    "day": day["day"],
                    "score": day["productivity_score"],
                    "todos": f"{day['completed_todos']}/{day['total_todos']}",
                    "logged": _fmt_minutes(day["total_time_logged"]),
                    "productive": _fmt_minutes(day["productive_time"]),
                    "goal": "yes" if day["goal_achieved"] else "no",
                    "streak": day["streak_days"],
                }
                for day in report["days"]
            ]
        )
        st.line_chart({"score": [day["productivity_score"] for day in report["days"]]})

        st.subheader("C) Category breakdown (last day)")
        last_day = report["days"][-1]
        if last_day["category_breakdown"]:
            st.table(last_day["category_breakdown"])
        else:
            st.write("No time logged on the last day.")

        st.subheader("D) Rollups")
        r1, r2 = st.columns(2)
        r1.write("**Last week**")
        r1.table([report["last_week"]])
        r2.write("**Last month**")
        r2.table([report["last_month"]["aggregate"]])

    except ValueError as exc:
        st.error(f"Input error: {exc}")
    except Exception:
        st.error("Something went wrong while computing metrics. Please verify the input format.")


if __name__ == "__main__":
    main()
