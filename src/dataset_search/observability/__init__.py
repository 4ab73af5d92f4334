"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from dataset_search.observability.context import get_trace_context, set_trace_context, trace_context
from dataset_search.observability.logging import JsonFormatter, configure_logging
from dataset_search.observability.metrics import (
    DOCUMENTS_SKIPPED,
    INDEX_BUILD_LATENCY,
    INDEX_DOC_COUNT,
    QUERY_COUNT,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from dataset_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENTS_SKIPPED",
    "INDEX_BUILD_LATENCY",
    "INDEX_DOC_COUNT",
    "QUERY_COUNT",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
