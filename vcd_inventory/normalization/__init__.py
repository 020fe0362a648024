"""
Normalization layer for the vCD inventory aggregator.

Maps raw records from every source family onto one canonical,
kind-specific schema.
"""
from .normalizer import NormalizedBatch, RecordNormalizationError, RecordNormalizer
from .records import (
    RECORD_TYPES,
    CanonicalRecord,
    CatalogItemRecord,
    CatalogRecord,
    EdgeGatewayRecord,
    EventRecord,
    StorageProfileRecord,
    TaskRecord,
    VAppRecord,
    VirtualMachineRecord,
)

__all__ = [
    "RecordNormalizer",
    "RecordNormalizationError",
    "NormalizedBatch",
    "CanonicalRecord",
    "VirtualMachineRecord",
    "TaskRecord",
    "EventRecord",
    "StorageProfileRecord",
    "CatalogRecord",
    "VAppRecord",
    "CatalogItemRecord",
    "EdgeGatewayRecord",
    "RECORD_TYPES",
]
