from pathlib import Path

import pytest

from productivity_accounting.config import Settings
from productivity_accounting.report import build_report, load_records

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def _sample_records(settings):
    return load_records(
        time_logs=str(EXAMPLES / "sample_time_logs.csv"),
        todos=str(EXAMPLES / "sample_todos.csv"),
        tz=settings.tz,
    )


def test_sample_report(store, settings):
    entries, todos = _sample_records(settings)
    report = build_report(store, "demo", entries, todos, settings)

    assert report["ingestion"] == {"todos_stored": 13, "time_logs_stored": 13, "time_logs_rejected": 0}
    assert report["range"] == {"start": "2025-03-02", "end": "2025-03-07"}
    assert [day["day"] for day in report["days"]] == [
        "2025-03-02",
        "2025-03-03",
        "2025-03-04",
        "2025-03-05",
        "2025-03-06",
        "2025-03-07",
    ]
    assert report["last_week"]["days_tracked"] == 6
    assert 0 <= report["stats"]["average_productivity_score"] <= 100


def test_overlapping_logs_are_counted_not_fatal(store, settings):
    entries, todos = _sample_records(settings)
    duplicate = entries[0]
    report = build_report(store, "demo", entries + [duplicate], todos, settings)

    assert report["ingestion"]["time_logs_stored"] == 13
    assert report["ingestion"]["time_logs_rejected"] == 1


def test_unknown_owner_has_empty_report(store, settings):
    entries, todos = _sample_records(settings)
    report = build_report(store, "nobody", entries, todos, settings)

    assert report["days"] == []
    assert report["stats"]["trend"] == "stable"


def test_load_records_rejects_non_json_dataset(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        load_records(data=str(path))


def test_report_buckets_days_in_configured_zone(store):
    tokyo = Settings(database_url="sqlite://", day_timezone="Asia/Tokyo")
    report = build_report(store, "demo", *_sample_records(tokyo), tokyo)

    assert report["range"] == {"start": "2025-03-02", "end": "2025-03-07"}
    assert report["days"][0]["total_todos"] == 3
