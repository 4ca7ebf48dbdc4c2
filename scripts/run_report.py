"""Replay a todo/time-log dataset and print a productivity report."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from productivity_accounting.config import get_settings
from productivity_accounting.report import build_report, load_records
from productivity_accounting.store import Store


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the productivity accounting report")
    parser.add_argument("--data", help="Path to a JSON dataset with 'time_logs' and 'todos'")
    parser.add_argument("--time-logs", help="Path to a time-log CSV")
    parser.add_argument("--todos", help="Path to a todo CSV")
    parser.add_argument("--owner", required=True, help="Owner id to report on")
    parser.add_argument("--db", default="sqlite://", help="Database URL (default: in-memory SQLite)")
    args = parser.parse_args()

    if not (args.data or args.time_logs or args.todos):
        parser.error("one of --data, --time-logs or --todos is required")

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    entries, todos = load_records(data=args.data, time_logs=args.time_logs, todos=args.todos, tz=settings.tz)
    store = Store(args.db, settings=settings)
    try:
        report = build_report(store, args.owner, entries, todos, settings)
    finally:
        store.close()

    print(json.dumps(report, indent=2))

    outputs_dir = Path("outputs")
    outputs_dir.mkdir(parents=True, exist_ok=True)
    out_path = outputs_dir / f"productivity_report_{args.owner}.json"
    out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Saved productivity report to {out_path}")


if __name__ == "__main__":
    main()
