"""
Result types returned by the aggregator.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ingestion.base_adapter import ResourceFilter, ResourceKind, SourceFailure
from normalization.records import CanonicalRecord
from observability.metrics import AggregationMetrics


@dataclass
class SourceOutcome:
    """What one attempted source contributed; diagnostics only."""
    source_id: str
    succeeded: bool
    record_count: int = 0
    failure: Optional[SourceFailure] = None
    description: Optional[str] = None
    elapsed_seconds: Optional[float] = None

    @classmethod
    def success(cls, source_id: str, record_count: int, **kwargs) -> "SourceOutcome":
        return cls(source_id=source_id, succeeded=True, record_count=record_count, **kwargs)

    @classmethod
    def failed(cls, failure: SourceFailure, **kwargs) -> "SourceOutcome":
        return cls(source_id=failure.source_id, succeeded=False, failure=failure, **kwargs)

    def summary(self) -> str:
        """One line in the style 'Admin VM query: Failed (forbidden (403))'."""
        label = self.description or self.source_id
        if self.succeeded:
            return f"{label}: {self.record_count} items"
        return f"{label}: Failed ({self.failure.describe() if self.failure else 'error'})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "description": self.description,
            "succeeded": self.succeeded,
            "record_count": self.record_count,
            "failure_reason": self.failure.reason if self.failure else None,
            "status_code": self.failure.status_code if self.failure else None,
            "message": self.failure.message if self.failure else None,
            "elapsed_seconds": self.elapsed_seconds,
        }


@dataclass
class AggregationResult:
    """Merged records plus one outcome per attempted source, in invocation order."""
    kind: ResourceKind
    records: List[CanonicalRecord] = field(default_factory=list)
    source_outcomes: List[SourceOutcome] = field(default_factory=list)
    resource_filter: Optional[ResourceFilter] = None
    metrics: Optional[AggregationMetrics] = None

    @property
    def succeeded_sources(self) -> List[str]:
        return [o.source_id for o in self.source_outcomes if o.succeeded]

    @property
    def failed_sources(self) -> List[str]:
        return [o.source_id for o in self.source_outcomes if not o.succeeded]

    @property
    def has_failures(self) -> bool:
        return any(not o.succeeded for o in self.source_outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "filter": self.resource_filter.describe() if self.resource_filter else None,
            "record_count": len(self.records),
            "records": [record.to_dict() for record in self.records],
            "source_outcomes": [outcome.to_dict() for outcome in self.source_outcomes],
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }


class NoSourcesAvailable(RuntimeError):
    """Raised when a call requires a successful source and none succeeded."""

    def __init__(self, kind: ResourceKind, outcomes: List[SourceOutcome]):
        self.kind = kind
        self.outcomes = outcomes
        if outcomes:
            detail = "; ".join(outcome.summary() for outcome in outcomes)
        else:
            detail = "no applicable sources"
        super().__init__(f"No source answered for {kind.value}: {detail}")
