from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REGISTRY = CollectorRegistry()

# Generation calls are slow (tens of seconds); whole jobs run for minutes.
PIPELINE_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 180.0, 300.0, 600.0, 900.0)

# Jobs
jobs_submitted = Counter("briefing_jobs_submitted_total", "Jobs accepted", registry=REGISTRY)
jobs_finished = Counter(
    "briefing_jobs_finished_total",
    "Jobs finished by final status",
    labelnames=("status",),
    registry=REGISTRY,
)
job_errors = Counter(
    "briefing_job_errors_total", "Job stage errors", labelnames=("stage",), registry=REGISTRY
)
audio_outcomes = Counter(
    "briefing_audio_total", "Audio branch outcomes", labelnames=("status",), registry=REGISTRY
)

# Stage durations
stage_seconds = Histogram(
    "briefing_stage_seconds",
    "Pipeline stage latency (seconds)",
    labelnames=("stage",),
    registry=REGISTRY,
    buckets=PIPELINE_BUCKETS,
)
job_seconds = Histogram(
    "briefing_job_seconds", "Whole job latency (seconds)", registry=REGISTRY, buckets=PIPELINE_BUCKETS
)

# Generation client
generation_calls = Counter(
    "briefing_generation_calls_total",
    "Generation service calls by kind and outcome",
    labelnames=("kind", "outcome"),
    registry=REGISTRY,
)
breaker_state = Gauge(
    "briefing_breaker_state",
    "Generation circuit breaker state (0 closed, 1 half-open, 2 open)",
    labelnames=("name",),
    registry=REGISTRY,
)


@contextmanager
def time_hist(h: Histogram) -> Iterator[None]:
    """Observe the wall time of the block, including when it raises."""
    t0 = time.perf_counter()
    try:
        yield
    finally:
        h.observe(max(0.0, time.perf_counter() - t0))
