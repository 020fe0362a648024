"""
Aggregator: fan-out, normalize, filter, deduplicate, report.

For one resource kind the aggregator:
1. Selects every registered adapter applicable to the kind, in priority order
2. Queries each adapter independently (sequentially or on a thread pool)
3. Records one SourceOutcome per attempted adapter
4. Normalizes each successful source's raw records, dropping bad ones
5. Applies the full filter client-side
6. Deduplicates first-seen-wins across the priority-ordered concatenation

Design decisions:
- Adapters never stop each other: a failure is recorded and the next runs
- Outcomes reflect what the source returned, before record-level drops
- Concurrent results are put back into priority order before dedup
- The only exception leaving aggregate() is NoSourcesAvailable, and only
  when the call requires at least one successful source
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from ingestion.base_adapter import (
    QueryResult,
    ResourceFilter,
    ResourceKind,
    SourceAdapter,
    SourceFailure,
)
from normalization.normalizer import RecordNormalizer
from normalization.records import CanonicalRecord
from observability.metrics import AggregationMetrics

from .dedup import Deduplicator
from .filters import FilterEvaluator
from .results import AggregationResult, NoSourcesAvailable, SourceOutcome

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Multi-source resource query aggregator.

    The adapter list is the standing registry: registration order is the
    default priority order, so register the most complete source first.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        normalizer: Optional[RecordNormalizer] = None,
        filter_evaluator: Optional[FilterEvaluator] = None,
        deduplicator: Optional[Deduplicator] = None,
        require_success: bool = False,
        max_workers: int = 1,
    ):
        """
        Args:
            adapters: Source adapters in default priority order
            normalizer: Record normalizer (strict by default)
            filter_evaluator: Client-side filter
            deduplicator: Identity-key deduplicator
            require_success: Default for aggregate(require_success=...)
            max_workers: >1 queries sources concurrently on a thread pool
        """
        source_ids = [adapter.source_id for adapter in adapters]
        duplicates = {sid for sid in source_ids if source_ids.count(sid) > 1}
        if duplicates:
            raise ValueError(f"Duplicate source ids: {sorted(duplicates)}")

        self.adapters = list(adapters)
        self.normalizer = normalizer or RecordNormalizer()
        self.filter_evaluator = filter_evaluator or FilterEvaluator()
        self.deduplicator = deduplicator or Deduplicator()
        self.require_success = require_success
        self.max_workers = max(1, int(max_workers))

    def applicable_sources(
        self,
        kind: ResourceKind,
        resource_filter: ResourceFilter,
        priority_order: Optional[Iterable[str]] = None,
    ) -> List[SourceAdapter]:
        """
        Adapters to attempt, highest priority first.

        Sources named in priority_order come first, in that order; remaining
        applicable sources follow in registration order.
        """
        applicable = [a for a in self.adapters if a.applies_to(kind, resource_filter)]
        if not priority_order:
            return applicable

        by_id = {adapter.source_id: adapter for adapter in applicable}
        registered = {adapter.source_id for adapter in self.adapters}
        ordered: List[SourceAdapter] = []
        for source_id in priority_order:
            if source_id not in registered:
                logger.warning(f"Ignoring unknown source in priority order: {source_id}")
                continue
            adapter = by_id.pop(source_id, None)
            if adapter is not None:
                ordered.append(adapter)

        ordered.extend(a for a in applicable if a.source_id in by_id)
        return ordered

    def aggregate(
        self,
        kind: ResourceKind,
        resource_filter: Optional[ResourceFilter] = None,
        priority_order: Optional[Iterable[str]] = None,
        require_success: Optional[bool] = None,
    ) -> AggregationResult:
        """
        Answer "what are all the <kind>" across every applicable source.

        Args:
            kind: Resource kind to aggregate
            resource_filter: Logical filter (None means no filter)
            priority_order: Source ids, highest priority first
            require_success: Fail unless a source succeeded (None uses the default)

        Returns:
            AggregationResult with merged records and per-source outcomes

        Raises:
            NoSourcesAvailable: If success is required and no source succeeded
        """
        resource_filter = resource_filter or ResourceFilter()
        if require_success is None:
            require_success = self.require_success

        metrics = AggregationMetrics(kind=kind.value, started_at=datetime.now(timezone.utc))
        sources = self.applicable_sources(kind, resource_filter, priority_order)

        logger.info(
            f"Aggregating {kind.value} {resource_filter.describe()} "
            f"from {len(sources)} source(s): {', '.join(s.source_id for s in sources) or '-'}"
        )

        outcomes: List[SourceOutcome] = []
        collected: List[CanonicalRecord] = []

        for adapter, (result, elapsed) in zip(sources, self._query_all(sources, kind, resource_filter)):
            if isinstance(result, SourceFailure):
                outcomes.append(SourceOutcome.failed(
                    result, description=adapter.description, elapsed_seconds=elapsed
                ))
                metrics.record_source_failure(result.source_id, result.reason, result.status_code)
                continue

            outcomes.append(SourceOutcome.success(
                adapter.source_id, len(result), description=adapter.description, elapsed_seconds=elapsed
            ))
            metrics.record_source_success(adapter.source_id, len(result))

            batch = self.normalizer.normalize_batch(kind, result)
            metrics.record_normalization(adapter.source_id, len(batch.records), batch.dropped)

            kept, rejected = self.filter_evaluator.apply(batch.records, resource_filter)
            metrics.records_filtered_out += rejected
            collected.extend(kept)

        records = self.deduplicator.dedupe(collected)
        metrics.duplicates_collapsed = len(collected) - len(records)
        metrics.records_returned = len(records)
        metrics.completed_at = datetime.now(timezone.utc)

        succeeded = [o for o in outcomes if o.succeeded]
        if not succeeded:
            if require_success:
                raise NoSourcesAvailable(kind, outcomes)
            if outcomes:
                logger.warning(f"Every source failed for {kind.value}; returning an empty result")

        logger.info(
            f"Aggregated {len(records)} {kind.value} record(s) "
            f"({len(succeeded)}/{len(outcomes)} sources answered, "
            f"{metrics.records_dropped} dropped, {metrics.duplicates_collapsed} duplicates)"
        )

        return AggregationResult(
            kind=kind,
            records=records,
            source_outcomes=outcomes,
            resource_filter=resource_filter,
            metrics=metrics,
        )

    def _query_all(
        self, sources: List[SourceAdapter], kind: ResourceKind, resource_filter: ResourceFilter
    ) -> List[Tuple[QueryResult, float]]:
        """Query every source; results come back in the order of ``sources``."""
        if self.max_workers == 1 or len(sources) <= 1:
            return [self._query_one(adapter, kind, resource_filter) for adapter in sources]

        workers = min(self.max_workers, len(sources))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vcd-source") as pool:
            # map() yields in submission order regardless of completion order
            return list(pool.map(lambda adapter: self._query_one(adapter, kind, resource_filter), sources))

    def _query_one(
        self, adapter: SourceAdapter, kind: ResourceKind, resource_filter: ResourceFilter
    ) -> Tuple[QueryResult, float]:
        started = time.monotonic()
        try:
            result = adapter.query(kind, resource_filter)
        except Exception as e:
            logger.error(f"  Unexpected error querying {adapter.source_id}: {e}", exc_info=True)
            result = SourceFailure(adapter.source_id, "error", None, f"{type(e).__name__}: {e}")

        if not isinstance(result, (list, SourceFailure)):
            result = SourceFailure(
                adapter.source_id,
                "invalid_response",
                None,
                f"adapter returned {type(result).__name__}",
            )

        return result, time.monotonic() - started
