"""
Client-side filter evaluation over canonical records.

Sources push down only part of a filter, some none at all, and not every
backend matches names case-insensitively. Every normalized record is
therefore re-checked here against the full filter.

Predicate semantics:
- name: case-insensitive substring of record.name
- container: case-insensitive substring of any of record.container_values()
  (container name or id; for VMs also the VDC name)
- status: exact match
- since: inclusive lower bound on record.timestamp
An active predicate whose field is absent on the record fails (fail closed).
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from ingestion.base_adapter import ResourceFilter
from normalization.records import CanonicalRecord


class FilterEvaluator:
    """Applies a ResourceFilter uniformly to records from any source."""

    def matches(self, record: CanonicalRecord, resource_filter: Optional[ResourceFilter]) -> bool:
        if resource_filter is None:
            return True

        return (
            self._name_matches(record, resource_filter.name)
            and self._container_matches(record, resource_filter.container)
            and self._status_matches(record, resource_filter.status)
            and self._since_matches(record, resource_filter.since)
        )

    def apply(
        self, records: Iterable[CanonicalRecord], resource_filter: Optional[ResourceFilter]
    ) -> Tuple[List[CanonicalRecord], int]:
        """
        Filter records, preserving order.

        Returns:
            Tuple of (matching records, number rejected)
        """
        kept: List[CanonicalRecord] = []
        rejected = 0
        for record in records:
            if self.matches(record, resource_filter):
                kept.append(record)
            else:
                rejected += 1
        return kept, rejected

    @staticmethod
    def _name_matches(record: CanonicalRecord, name: Optional[str]) -> bool:
        if not name:
            return True
        return _contains(record.name, name)

    @staticmethod
    def _container_matches(record: CanonicalRecord, container: Optional[str]) -> bool:
        if not container:
            return True
        return any(_contains(value, container) for value in record.container_values())

    @staticmethod
    def _status_matches(record: CanonicalRecord, status: Optional[str]) -> bool:
        if not status:
            return True
        return record.status is not None and record.status == status

    @staticmethod
    def _since_matches(record: CanonicalRecord, since: Optional[datetime]) -> bool:
        if since is None:
            return True
        if record.timestamp is None:
            return False
        return _aware(record.timestamp) >= _aware(since)


def _contains(value: Optional[str], needle: str) -> bool:
    if value is None:
        return False
    return needle.lower() in value.lower()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
