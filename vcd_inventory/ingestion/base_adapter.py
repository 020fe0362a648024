"""
Base adapter interface for all source adapters.

Defines the contract every vCD query backend must implement and the shared
data models passed between adapters and the rest of the pipeline:
- ResourceKind: what is being queried
- ResourceFilter: the logical predicate requested by the caller
- RawRecord: one source-specific payload, before normalization
- SourceFailure: why a source could not answer
"""
import logging
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

import requests

from .http_client import CircuitOpenError, HttpClient

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Logical resource kinds the aggregator knows how to answer for."""
    VIRTUAL_MACHINE = "vm"
    TASK = "task"
    EVENT = "event"
    STORAGE_PROFILE = "storage_profile"
    CATALOG = "catalog"
    VAPP = "vapp"
    CATALOG_ITEM = "catalog_item"
    EDGE_GATEWAY = "edge_gateway"

    @classmethod
    def from_name(cls, value: str) -> "ResourceKind":
        """Resolve a kind from its value or member name (case-insensitive)."""
        normalized = value.strip().lower().replace("-", "_")
        for kind in cls:
            if normalized in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown resource kind: {value}")


class RecordEncoding(Enum):
    """Wire encoding families a raw record can arrive in."""
    STRUCTURED = "structured"   # native-typed JSON objects (CloudAPI)
    ATTRIBUTES = "attributes"   # text-only attribute bags (legacy query service)


@dataclass(frozen=True)
class ResourceFilter:
    """
    Logical predicate shared by adapters and the filter evaluator.

    Every field is optional; an unset field is an inactive predicate.
    """
    name: Optional[str] = None
    container: Optional[str] = None
    status: Optional[str] = None
    since: Optional[datetime] = None

    @classmethod
    def lookback(cls, hours: float, **kwargs) -> "ResourceFilter":
        """Build a filter whose time window starts ``hours`` before now."""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        return cls(since=since, **kwargs)

    @property
    def is_empty(self) -> bool:
        return not any((self.name, self.container, self.status, self.since))

    def describe(self) -> str:
        if self.is_empty:
            return "(no filter)"

        parts = []
        if self.name:
            parts.append(f'named "{self.name}"')
        if self.container:
            parts.append(f'in "{self.container}"')
        if self.status:
            parts.append(f"with status {self.status}")
        if self.since:
            parts.append(f"since {self.since.isoformat()}")
        return " ".join(parts)


@dataclass
class RawRecord:
    """
    One record exactly as a source returned it.

    Structured payloads keep native JSON types. Attribute payloads are a
    mapping of attribute name to text; parsing happens only in the normalizer.
    """
    source_id: str
    encoding: RecordEncoding
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SourceFailure:
    """Why a source could not answer a query."""
    source_id: str
    reason: str                   # not_found | forbidden | unauthorized | unavailable | timeout | ...
    status_code: Optional[int] = None
    message: Optional[str] = None

    def describe(self) -> str:
        if self.status_code is not None:
            return f"{self.reason} ({self.status_code})"
        return self.reason


QueryResult = Union[List[RawRecord], SourceFailure]

_STATUS_REASONS = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    408: "timeout",
    429: "unavailable",
}


def failure_from_exception(source_id: str, exc: BaseException) -> SourceFailure:
    """Map a transport, HTTP, or parse error onto a SourceFailure."""
    message = f"{type(exc).__name__}: {exc}"

    if isinstance(exc, CircuitOpenError):
        return SourceFailure(source_id, "circuit_open", None, message)

    if isinstance(exc, requests.exceptions.JSONDecodeError):
        return SourceFailure(source_id, "invalid_response", None, message)

    if isinstance(exc, requests.HTTPError):
        response = exc.response
        status_code = response.status_code if response is not None else None
        if status_code is None:
            return SourceFailure(source_id, "unavailable", None, message)
        reason = _STATUS_REASONS.get(status_code)
        if reason is None:
            reason = "unavailable" if status_code >= 500 else "error"
        return SourceFailure(source_id, reason, status_code, message)

    if isinstance(exc, requests.Timeout):
        return SourceFailure(source_id, "timeout", None, message)

    if isinstance(exc, requests.RequestException):
        return SourceFailure(source_id, "unavailable", None, message)

    if isinstance(exc, ValueError):
        # Undecodable JSON and malformed XML bodies both land here
        return SourceFailure(source_id, "invalid_response", None, message)

    return SourceFailure(source_id, "error", None, message)


class SourceAdapter(ABC):
    """
    Abstract base class for vCD query backends.

    Subclasses implement _query() for one API family. query() wraps it so an
    ordinary backend failure becomes a SourceFailure instead of an exception.
    """

    #: Kinds this API family can answer for at all.
    supported_kinds: FrozenSet[ResourceKind] = frozenset()

    def __init__(self, source_id: str, client: HttpClient, config: Optional[Dict[str, Any]] = None):
        self.source_id = source_id
        self.client = client
        self.config = config or {}
        self.description: str = self.config.get("description", source_id)
        self.page_size: int = int(self.config.get("page_size", 128))
        self.max_pages: int = int(self.config.get("max_pages", 50))
        kinds = self.config.get("kinds")
        if kinds:
            self.kinds = frozenset(ResourceKind.from_name(k) for k in kinds) & self.supported_kinds
        else:
            self.kinds = self.supported_kinds

    def applies_to(self, kind: ResourceKind, resource_filter: ResourceFilter) -> bool:
        """Whether this adapter should be attempted for the request."""
        return kind in self.kinds

    def query(self, kind: ResourceKind, resource_filter: ResourceFilter) -> QueryResult:
        """
        Run one logical query against the backend.

        Args:
            kind: Resource kind being aggregated
            resource_filter: Logical filter; the adapter pushes down what it can

        Returns:
            List of RawRecord (possibly empty) or a SourceFailure
        """
        try:
            return self._query(kind, resource_filter)
        except (requests.RequestException, CircuitOpenError, ValueError) as exc:
            failure = failure_from_exception(self.source_id, exc)
            logger.warning(f"{self.description} failed: {failure.describe()}")
            logger.debug("Full traceback:\n%s", traceback.format_exc())
            return failure

    @abstractmethod
    def _query(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[RawRecord]:
        """
        Fetch every matching raw record from the backend.

        Raises:
            requests.RequestException, CircuitOpenError, ValueError on failure
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_id={self.source_id!r})"
