"""
Observability layer for the vCD inventory aggregator.

This module provides metrics collection and reporting for aggregation calls.

Main exports:
- AggregationMetrics: Tracks metrics for one aggregate() call
- AggregationReporter: Generates Markdown reports
"""
from .metrics import AggregationMetrics
from .reporter import AggregationReporter

__all__ = [
    "AggregationMetrics",
    "AggregationReporter",
]
