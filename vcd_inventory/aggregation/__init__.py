"""
Aggregation layer: fan-out across sources, client-side filtering,
deduplication, and per-source outcome reporting.
"""
from .aggregator import Aggregator
from .dedup import Deduplicator
from .filters import FilterEvaluator
from .results import AggregationResult, NoSourcesAvailable, SourceOutcome
from .sources import DEFAULT_SOURCES, build_sources

__all__ = [
    "Aggregator",
    "AggregationResult",
    "SourceOutcome",
    "NoSourcesAvailable",
    "FilterEvaluator",
    "Deduplicator",
    "build_sources",
    "DEFAULT_SOURCES",
]
