"""
Ingestion layer for the vCD inventory aggregator.

Provides one adapter per vCD query family:
- CloudAPI (/cloudapi/1.0.0, structured JSON)
- Typed query service (/api/query, XML attribute records), tenant and admin flavours
"""
from .base_adapter import (
    QueryResult,
    RawRecord,
    RecordEncoding,
    ResourceFilter,
    ResourceKind,
    SourceAdapter,
    SourceFailure,
)
from .cloudapi_adapter import CloudApiAdapter
from .http_client import CircuitBreaker, CircuitOpenError, HttpClient, RetryConfig
from .legacy_query_adapter import LegacyQueryAdapter

__all__ = [
    "ResourceKind",
    "ResourceFilter",
    "RecordEncoding",
    "RawRecord",
    "SourceFailure",
    "QueryResult",
    "SourceAdapter",
    "CloudApiAdapter",
    "LegacyQueryAdapter",
    "HttpClient",
    "RetryConfig",
    "CircuitBreaker",
    "CircuitOpenError",
]
