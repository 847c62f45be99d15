"""
Prometheus metrics instrumentation for Whimzy.

This module provides metrics tracking for:
- Turns by mode and outcome
- Model API latency
- Artifact extraction outcomes
- Error rate by type
- Turns currently in flight
- Database query time

Usage:
    from metrics import track_model_call, track_db_query, track_error

    with track_model_call(provider="google-genai", model="gemini-2.5-pro"):
        # ... call the model ...
        pass

    track_error("generation_failed")
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram

# === COUNTERS ===

turns_total = Counter(
    "whimzy_turns_total",
    "Total number of chat turns processed",
    ["mode", "outcome"],
)

extractions_total = Counter(
    "whimzy_artifact_extractions_total",
    "Artifact extraction outcomes by winning matcher",
    ["matcher"],
)

errors_total = Counter(
    "whimzy_errors_total",
    "Total number of errors encountered",
    ["error_type"],
)

# === HISTOGRAMS ===

model_latency_seconds = Histogram(
    "whimzy_model_latency_seconds",
    "Time taken for generative model calls",
    ["provider", "model"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")),
)

db_query_time_seconds = Histogram(
    "whimzy_db_query_time_seconds",
    "Time taken for database queries",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, float("inf")),
)

# === GAUGES ===

active_turns_gauge = Gauge(
    "whimzy_active_turns",
    "Number of turns currently waiting on the model or updating",
)

# === CONTEXT MANAGERS ===


@contextmanager
def track_model_call(provider: str, model: str) -> Generator[None, None, None]:
    """
    Context manager to track model call latency.

    Args:
        provider: The model provider (e.g., "google-genai", "anthropic")
        model: The model name (e.g., "gemini-2.5-pro")
    """
    start_time = time.time()
    try:
        yield
    finally:
        model_latency_seconds.labels(provider=provider, model=model).observe(time.time() - start_time)


@contextmanager
def track_db_query(operation: str) -> Generator[None, None, None]:
    """
    Context manager to track database query metrics.

    Args:
        operation: The database operation (e.g., "session_get", "game_list")
    """
    start_time = time.time()
    try:
        yield
    finally:
        db_query_time_seconds.labels(operation=operation).observe(time.time() - start_time)


@contextmanager
def track_active_turn() -> Generator[None, None, None]:
    """Count a turn as in flight for the duration of the block."""
    active_turns_gauge.inc()
    try:
        yield
    finally:
        active_turns_gauge.dec()


def track_turn(mode: str, outcome: str) -> None:
    """Record a finished turn. Outcome is "updated", "unchanged" or "failed"."""
    turns_total.labels(mode=mode, outcome=outcome).inc()


def track_extraction(matcher: str) -> None:
    """Record which matcher produced an artifact, or "absent"."""
    extractions_total.labels(matcher=matcher).inc()


def track_error(error_type: str) -> None:
    """
    Track an error occurrence.

    Args:
        error_type: The type of error (e.g., "generation_failed", "database_error")
    """
    errors_total.labels(error_type=error_type).inc()
