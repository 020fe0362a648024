"""
Record normalizer: raw source records -> canonical records.

Handles both raw encodings through the same field schemas:
- STRUCTURED payloads are read by dotted key path and keep native types
- ATTRIBUTES payloads are flat text; booleans, integers, and timestamps are
  parsed from their string forms

Design decisions:
- Missing or blank values leave the canonical field unset
- A present but malformed value makes the record malformed; strict mode
  drops such records, lenient mode leaves the field unset instead
- A record lacking any of its kind's required fields is always dropped
- Batch normalization never aborts: bad records are counted and skipped
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from ingestion.base_adapter import RawRecord, RecordEncoding, ResourceKind

from . import parsers
from .records import CanonicalRecord
from .schemas import BOOLEAN, INTEGER, LOCATOR, SCHEMAS, TEXT, TIMESTAMP, FieldSpec

logger = logging.getLogger(__name__)

PARSERS: Dict[str, Callable[[Any], Any]] = {
    TEXT: parsers.parse_text,
    INTEGER: parsers.parse_integer,
    BOOLEAN: parsers.parse_boolean,
    TIMESTAMP: parsers.parse_timestamp,
    LOCATOR: parsers.identifier_from_locator,
}


class RecordNormalizationError(ValueError):
    """A single raw record could not be mapped to canonical form."""

    def __init__(self, source_id: Optional[str], reason: str):
        super().__init__(f"{source_id or 'unknown source'}: {reason}")
        self.source_id = source_id
        self.reason = reason


@dataclass
class NormalizedBatch:
    """Outcome of normalizing one source's records."""
    records: List[CanonicalRecord] = field(default_factory=list)
    dropped: int = 0


class RecordNormalizer:
    """
    Maps raw records of either encoding onto canonical records.

    Stateless across calls; one instance can serve concurrent aggregations.
    """

    def __init__(self, strict: bool = True, validation_sample_limit: int = 3):
        """
        Args:
            strict: Drop records carrying malformed values (otherwise unset the field)
            validation_sample_limit: Max dropped records logged per batch
        """
        self.strict = strict
        self.validation_sample_limit = validation_sample_limit

    def normalize(self, kind: ResourceKind, raw_record: RawRecord) -> CanonicalRecord:
        """
        Normalize one raw record.

        Raises:
            RecordNormalizationError: If the record is malformed or incomplete
        """
        schema = SCHEMAS[kind]
        payload = raw_record.payload
        if not isinstance(payload, dict):
            raise RecordNormalizationError(raw_record.source_id, "payload is not a mapping")

        values: Dict[str, Any] = {}
        for spec in schema.fields:
            value = self._read_field(spec, raw_record)
            if value is not None:
                values[spec.name] = value

        if values.get("identifier") is None and values.get("href"):
            try:
                values["identifier"] = parsers.identifier_from_locator(values["href"])
            except ValueError as exc:
                self._malformed(raw_record, "identifier", exc)

        missing = [name for name in schema.required if values.get(name) is None]
        if missing:
            raise RecordNormalizationError(
                raw_record.source_id, f"missing required field(s): {', '.join(missing)}"
            )

        return schema.record_type(source_id=raw_record.source_id, **values)

    def normalize_batch(self, kind: ResourceKind, raw_records: Iterable[RawRecord]) -> NormalizedBatch:
        """Normalize every record independently, dropping the ones that fail."""
        batch = NormalizedBatch()

        for raw_record in raw_records:
            try:
                batch.records.append(self.normalize(kind, raw_record))
            except RecordNormalizationError as exc:
                if batch.dropped < self.validation_sample_limit:
                    logger.warning(
                        "Dropping %s record (%s): %s",
                        kind.value, exc, str(raw_record.payload)[:500],
                    )
                batch.dropped += 1

        if batch.dropped > self.validation_sample_limit:
            logger.warning(
                "Dropped %d %s records in total (%d logged)",
                batch.dropped, kind.value, self.validation_sample_limit,
            )

        return batch

    def _read_field(self, spec: FieldSpec, raw_record: RawRecord) -> Any:
        parse = PARSERS[spec.parser]
        if raw_record.encoding is RecordEncoding.STRUCTURED:
            candidates = [_lookup_path(raw_record.payload, path) for path in spec.structured]
        else:
            candidates = [raw_record.payload.get(name) for name in spec.attributes]

        for candidate in candidates:
            try:
                value = parse(candidate)
            except ValueError as exc:
                self._malformed(raw_record, spec.name, exc)
                continue
            if value is not None:
                return value

        return None

    def _malformed(self, raw_record: RawRecord, field_name: str, exc: Exception) -> None:
        if self.strict:
            raise RecordNormalizationError(raw_record.source_id, f"malformed {field_name}: {exc}")
        logger.debug("Leaving %s unset for %s record: %s", field_name, raw_record.source_id, exc)


def _lookup_path(payload: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path ('vapp.name') through nested mappings."""
    current: Any = payload
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
