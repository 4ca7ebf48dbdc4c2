"""Demo script for productivity-accounting."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from productivity_accounting.config import Settings
from productivity_accounting.report import build_report, load_records
from productivity_accounting.store import Store


def main() -> None:
    settings = Settings(database_url="sqlite://")
    entries, todos = load_records(
        time_logs="examples/sample_time_logs.csv",
        todos="examples/sample_todos.csv",
        tz=settings.tz,
    )
    store = Store(settings=settings)
    report = build_report(store, "demo", entries, todos, settings)
    for day in report["days"]:
        print(day["day"], "score:", day["productivity_score"], "goal:", day["goal_achieved"], "streak:", day["streak_days"])
    print("Stats:", report["stats"])
    print("Last week:", report["last_week"])


if __name__ == "__main__":
    main()
