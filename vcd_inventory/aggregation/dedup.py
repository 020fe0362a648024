"""
Deduplication of records observed through several sources.

Input arrives concatenated in source-priority order, so first-seen-wins
means the highest-priority source's version of an entity is kept.

Known gap: the default identity for most kinds is the bare name, which
merges distinct entities that share a name across containers. Pass
scope_by_container=True to key on (container, name) instead.
"""
import logging
from typing import Any, Dict, Iterable, List, Tuple

from normalization.records import CanonicalRecord

logger = logging.getLogger(__name__)


class Deduplicator:
    """First-seen-wins deduplication on each record's identity key."""

    def __init__(self, scope_by_container: bool = False):
        self.scope_by_container = scope_by_container

    def dedupe(self, records: Iterable[CanonicalRecord]) -> List[CanonicalRecord]:
        """
        Collapse records sharing an identity key.

        Args:
            records: Records in source-priority order

        Returns:
            One record per identity key, in order of first appearance
        """
        seen: Dict[Tuple[Any, ...], CanonicalRecord] = {}
        unique: List[CanonicalRecord] = []

        for record in records:
            key = record.identity_key(self.scope_by_container)
            kept = seen.get(key)
            if kept is not None:
                logger.debug(
                    "Duplicate %s %s from %s collapsed into %s's version",
                    record.kind.value, key, record.source_id, kept.source_id,
                )
                continue
            seen[key] = record
            unique.append(record)

        return unique
