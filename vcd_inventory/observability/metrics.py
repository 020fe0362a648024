"""
Metrics collection for aggregation calls.

This module provides AggregationMetrics, a dataclass that tracks the
observability counters of a single aggregate() call:
- Raw records retrieved per source
- Records dropped during normalization, per source
- Records rejected by the client-side filter
- Duplicates collapsed by the deduplicator
- Source failures encountered

Design decisions:
- One metrics object per call, created fresh and returned with the result
- Defaultdict used for automatic initialization of per-source counters
- Serializable to_dict() for JSON output
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class AggregationMetrics:
    """
    Metrics for a single aggregation call.

    Tracks per-source volumes and every stage's losses, so a caller can tell
    "no VMs exist" from "every VM was filtered out or dropped".
    """
    kind: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    # Core counts
    sources_attempted: int = 0
    sources_failed: int = 0
    records_retrieved: int = 0
    records_normalized: int = 0
    records_dropped: int = 0
    records_filtered_out: int = 0
    duplicates_collapsed: int = 0
    records_returned: int = 0
    errors: int = 0

    # Key: source_id, Value: raw records retrieved
    records_by_source: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Key: source_id, Value: records dropped by the normalizer
    dropped_by_source: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Failures encountered, in invocation order
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def record_source_success(self, source_id: str, count: int):
        """
        Record a source that answered.

        Args:
            source_id: Source identifier
            count: Raw records it returned
        """
        self.sources_attempted += 1
        self.records_by_source[source_id] += count
        self.records_retrieved += count

    def record_source_failure(self, source_id: str, reason: str, status_code: Optional[int] = None):
        """
        Record a source that failed.

        Args:
            source_id: Source identifier
            reason: Failure category (e.g. "forbidden")
            status_code: HTTP status, if any
        """
        self.sources_attempted += 1
        self.sources_failed += 1
        self.errors += 1
        self.failures.append({
            "source_id": source_id,
            "reason": reason,
            "status_code": status_code,
        })

    def record_normalization(self, source_id: str, normalized: int, dropped: int):
        self.records_normalized += normalized
        self.records_dropped += dropped
        if dropped:
            self.dropped_by_source[source_id] += dropped

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert metrics to dictionary for JSON serialization.

        Defaultdicts are converted to regular dicts.

        Returns:
            Dictionary representation suitable for JSON output
        """
        return {
            "kind": self.kind,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "sources_attempted": self.sources_attempted,
            "sources_failed": self.sources_failed,
            "records_retrieved": self.records_retrieved,
            "records_normalized": self.records_normalized,
            "records_dropped": self.records_dropped,
            "records_filtered_out": self.records_filtered_out,
            "duplicates_collapsed": self.duplicates_collapsed,
            "records_returned": self.records_returned,
            "errors": self.errors,
            "records_by_source": dict(self.records_by_source),
            "dropped_by_source": dict(self.dropped_by_source),
            "failures": self.failures,
        }
