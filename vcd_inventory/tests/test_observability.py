"""
Lightweight validation tests for the observability layer.

These tests verify:
- AggregationMetrics tracks source outcomes and stage losses correctly
- AggregationMetrics serializes to dict properly
- AggregationReporter generates valid Markdown output

Not comprehensive unit tests - just sanity checks to ensure
the observability layer can be integrated into the aggregator.
"""
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from aggregation import AggregationResult, Aggregator, SourceOutcome
from ingestion.base_adapter import ResourceFilter, ResourceKind, SourceFailure
from normalization import StorageProfileRecord
from observability import AggregationMetrics, AggregationReporter

from conftest import FakeAdapter, http_error


def test_metrics_track_sources():
    """Verify AggregationMetrics counts successes and failures."""
    metrics = AggregationMetrics(kind="vm", started_at=datetime.now(timezone.utc))

    metrics.record_source_success("cloudapi", 12)
    metrics.record_source_success("query", 3)
    metrics.record_source_failure("admin_query", "forbidden", 403)

    assert metrics.sources_attempted == 3
    assert metrics.sources_failed == 1
    assert metrics.records_retrieved == 15
    assert metrics.records_by_source["cloudapi"] == 12
    assert metrics.failures == [{"source_id": "admin_query", "reason": "forbidden", "status_code": 403}]


def test_metrics_track_normalization_drops():
    metrics = AggregationMetrics(kind="task", started_at=datetime.now(timezone.utc))

    metrics.record_normalization("query", normalized=8, dropped=2)
    metrics.record_normalization("cloudapi", normalized=5, dropped=0)

    assert metrics.records_normalized == 13
    assert metrics.records_dropped == 2
    assert dict(metrics.dropped_by_source) == {"query": 2}


def test_metrics_serialization():
    """Verify AggregationMetrics converts to a plain dictionary."""
    metrics = AggregationMetrics(
        kind="vm",
        started_at=datetime(2024, 1, 15, 12, 0, 0),
        completed_at=datetime(2024, 1, 15, 12, 0, 3),
    )
    metrics.record_source_success("cloudapi", 4)

    data = metrics.to_dict()

    assert data["kind"] == "vm"
    assert data["started_at"] == "2024-01-15T12:00:00"
    assert data["duration_seconds"] == 3.0
    assert data["records_by_source"] == {"cloudapi": 4}
    assert type(data["records_by_source"]) is dict


def test_aggregation_populates_metrics():
    sources = [
        FakeAdapter("a", [{"name": "web-01"}, {"name": "db-01"}]),
        FakeAdapter("b", [{"name": "web-01"}]),
        FakeAdapter("c", error=http_error(503)),
    ]

    result = Aggregator(sources).aggregate(ResourceKind.VIRTUAL_MACHINE, ResourceFilter(name="web"))
    metrics = result.metrics

    assert metrics.kind == "vm"
    assert metrics.completed_at is not None
    assert metrics.sources_attempted == 3
    assert metrics.sources_failed == 1
    assert metrics.records_retrieved == 3
    assert metrics.records_filtered_out == 1
    assert metrics.duplicates_collapsed == 1
    assert metrics.records_returned == 1


@pytest.fixture
def storage_result():
    failure = SourceFailure("admin_query", "forbidden", 403, "403 Client Error")
    return AggregationResult(
        kind=ResourceKind.STORAGE_PROFILE,
        records=[
            StorageProfileRecord(source_id="query", name="gold", enabled=True, storage_used_mb=2048),
            StorageProfileRecord(source_id="query", name="silver", enabled=False),
        ],
        source_outcomes=[
            SourceOutcome.success("query", 2, description="Standard query"),
            SourceOutcome.failed(failure, description="Admin query"),
        ],
        resource_filter=ResourceFilter(name="o"),
        metrics=AggregationMetrics(
            kind="storage_profile",
            started_at=datetime(2024, 1, 15, 12, 0, 0),
            completed_at=datetime(2024, 1, 15, 12, 0, 2),
        ),
    )


def test_reporter_generates_markdown(storage_result):
    """Verify AggregationReporter generates valid Markdown."""
    report = AggregationReporter().generate_report(storage_result)

    assert "# Inventory Report: storage_profile" in report
    assert '**Filter:** named "o"' in report
    assert "## Summary" in report
    assert "## Query Summary" in report
    assert "forbidden (403)" in report
    assert "## Records (2)" in report
    assert "gold" in report and "silver" in report
    assert "N/A" in report  # silver has no usage figure
    assert "Yes" in report and "No" in report


def test_reporter_truncates_rows(storage_result):
    report = AggregationReporter(max_rows=1).generate_report(storage_result)

    assert "gold" in report
    assert "silver" not in report
    assert "_1 more record(s) not shown_" in report


def test_reporter_without_sources():
    report = AggregationReporter().generate_report(AggregationResult(kind=ResourceKind.EVENT))

    assert "No applicable sources." in report
    assert "(none)" in report


def test_reporter_saves_to_file(storage_result):
    """Verify AggregationReporter can save reports to file."""
    reporter = AggregationReporter()
    report = reporter.generate_report(storage_result)

    with tempfile.TemporaryDirectory() as tmpdir:
        report_path = reporter.save_report(report, Path(tmpdir), ResourceKind.STORAGE_PROFILE)

        assert report_path.exists()
        assert report_path.name.startswith("inventory-storage_profile-")
        assert report_path.suffix == ".md"
        assert "Inventory Report" in report_path.read_text()


def test_result_serializes_outcomes(storage_result):
    data = storage_result.to_dict()

    assert data["record_count"] == 2
    assert data["records"][0]["kind"] == "storage_profile"
    assert data["source_outcomes"][1]["failure_reason"] == "forbidden"
    assert data["source_outcomes"][1]["status_code"] == 403
    assert storage_result.failed_sources == ["admin_query"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
