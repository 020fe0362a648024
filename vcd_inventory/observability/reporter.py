"""
Generate human-readable aggregation reports in Markdown format.

This module provides AggregationReporter, which turns an AggregationResult
into a diagnostic Markdown document.

Report sections:
- Header with kind, filter, timestamp and duration
- Summary table with the aggregation metrics
- Query summary: one row per attempted source, succeeded or failed
- Records table with the kind's most useful columns

Design decisions:
- Uses tabulate library for clean table formatting (GitHub-flavored)
- Missing values render as "N/A", never as zero
- Reports saved with timestamp for historical tracking
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from tabulate import tabulate

from ingestion.base_adapter import ResourceKind

if TYPE_CHECKING:
    from aggregation.results import AggregationResult

COMMON_COLUMNS = ["name", "status", "container_name", "identifier"]

KIND_COLUMNS: Dict[ResourceKind, List[str]] = {
    ResourceKind.VIRTUAL_MACHINE: ["name", "status", "cpu_count", "memory_mb", "vdc_name", "container_name", "identifier"],
    ResourceKind.TASK: ["name", "status", "timestamp", "end_date", "owner_name", "operation", "object_name"],
    ResourceKind.EVENT: ["event_type", "timestamp", "user_name", "entity_name", "description"],
    ResourceKind.STORAGE_PROFILE: ["name", "enabled", "is_default", "storage_used_mb", "storage_limit_mb", "container_name"],
    ResourceKind.CATALOG: ["name", "template_count", "media_count", "is_published", "is_shared", "container_name"],
    ResourceKind.VAPP: ["name", "status", "vm_count", "cpu_count", "memory_mb", "container_name", "identifier"],
    ResourceKind.CATALOG_ITEM: ["name", "entity_name", "entity_type", "timestamp", "owner_name", "container_name"],
    ResourceKind.EDGE_GATEWAY: ["name", "status", "gateway_type", "container_name", "identifier"],
}

HEADERS = {
    "container_name": "Container",
    "cpu_count": "CPU",
    "memory_mb": "Memory (MB)",
    "vdc_name": "VDC",
    "identifier": "ID",
    "timestamp": "Time",
    "end_date": "End",
    "owner_name": "Owner",
    "object_name": "Object",
    "event_type": "Event",
    "user_name": "User",
    "entity_name": "Entity",
    "is_default": "Default",
    "storage_used_mb": "Used (MB)",
    "storage_limit_mb": "Limit (MB)",
    "template_count": "Templates",
    "media_count": "Media",
    "is_published": "Published",
    "is_shared": "Shared",
    "vm_count": "VMs",
    "entity_type": "Type",
    "gateway_type": "Gateway Type",
}


class AggregationReporter:
    """
    Generates Markdown diagnostic reports from aggregation results.

    Reports are designed to be:
    - Readable as plain text
    - Renderable as Markdown in GitHub/GitLab
    - Explicit about which sources failed and why
    """

    def __init__(self, max_rows: Optional[int] = None):
        """
        Args:
            max_rows: Truncate the records table after this many rows
        """
        self.max_rows = max_rows

    def generate_report(self, result: "AggregationResult") -> str:
        """
        Generate full aggregation report in Markdown format.

        Args:
            result: AggregationResult from Aggregator.aggregate()

        Returns:
            Markdown-formatted report as string
        """
        lines = []
        metrics = result.metrics

        # Header
        lines.append(f"# Inventory Report: {result.kind.value}")
        if result.resource_filter is not None:
            lines.append(f"**Filter:** {result.resource_filter.describe()}")
        if metrics is not None:
            lines.append(f"**Started:** {metrics.started_at.isoformat()}")
            if metrics.duration_seconds is not None:
                lines.append(f"**Duration:** {metrics.duration_seconds:.1f} seconds")
        lines.append("")

        # Summary table
        if metrics is not None:
            lines.append("## Summary")
            summary_data = [
                ["Sources Attempted", metrics.sources_attempted],
                ["Sources Failed", metrics.sources_failed],
                ["Records Retrieved", metrics.records_retrieved],
                ["Dropped (malformed)", metrics.records_dropped],
                ["Filtered Out", metrics.records_filtered_out],
                ["Duplicates Collapsed", metrics.duplicates_collapsed],
                ["Records Returned", metrics.records_returned],
            ]
            lines.append(tabulate(summary_data, headers=["Metric", "Value"], tablefmt="github"))
            lines.append("")

        # Query summary
        lines.append("## Query Summary")
        if result.source_outcomes:
            outcome_data = []
            for outcome in result.source_outcomes:
                status = "✓" if outcome.succeeded else "✗"
                detail = "" if outcome.succeeded else outcome.failure.describe()
                outcome_data.append([status, outcome.source_id, outcome.description or "", outcome.record_count, detail])
            lines.append(tabulate(
                outcome_data,
                headers=["Status", "Source", "Description", "Records", "Failure"],
                tablefmt="github",
            ))
        else:
            lines.append("No applicable sources.")
        lines.append("")

        # Records
        lines.append(f"## Records ({len(result.records)})")
        if result.records:
            columns = KIND_COLUMNS.get(result.kind, COMMON_COLUMNS)
            rows = result.records if self.max_rows is None else result.records[: self.max_rows]
            record_data = [[_display(getattr(record, column, None)) for column in columns] for record in rows]
            lines.append(tabulate(record_data, headers=[_header(c) for c in columns], tablefmt="github"))
            if self.max_rows is not None and len(result.records) > self.max_rows:
                lines.append("")
                lines.append(f"_{len(result.records) - self.max_rows} more record(s) not shown_")
        else:
            lines.append("(none)")
        lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path, kind: ResourceKind) -> Path:
        """
        Save report to file with timestamp.

        Args:
            report: Markdown report content
            output_dir: Directory to save report in
            kind: Resource kind, used in the file name

        Returns:
            Path to saved report file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"inventory-{kind.value}-{timestamp}.md"
        filepath.write_text(report, encoding="utf-8")
        return filepath


def _header(column: str) -> str:
    return HEADERS.get(column, column.replace("_", " ").title())


def _display(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)
