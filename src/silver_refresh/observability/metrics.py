"""
Prometheus metrics collection for silver-refresh

Refresh runs are short-lived batch jobs, so metrics live on a dedicated
registry that the CLI can push to a Pushgateway when a run ends.
"""
import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    push_to_gateway,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()

PUSH_JOB_NAME = "silver_refresh"


# =======================
# LOAD METRICS
# =======================

# Entity step duration (transform + replace)
entity_load_duration_seconds = Histogram(
    name="silver_entity_load_duration_seconds",
    documentation="Time spent refreshing one silver extent in seconds",
    labelnames=["entity", "status"],  # status: success, failed, dry_run
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

# Rows written per entity
rows_loaded_total = Counter(
    name="silver_rows_loaded_total",
    documentation="Total number of cleansed rows written to silver extents",
    labelnames=["entity"],
    registry=REGISTRY,
)

# Batch outcomes
batches_total = Counter(
    name="silver_batches_total",
    documentation="Total number of refresh batches by final state",
    labelnames=["state"],  # state: completed, aborted
    registry=REGISTRY,
)

# Entity failures by error code
entity_failures_total = Counter(
    name="silver_entity_failures_total",
    documentation="Total number of failed entity steps",
    labelnames=["entity", "error_code"],
    registry=REGISTRY,
)

# =======================
# DATA QUALITY METRICS
# =======================

quality_check_violations = Gauge(
    name="silver_quality_check_violations",
    documentation="Violating rows found by the last run of a quality check",
    labelnames=["check_id", "relation"],
    registry=REGISTRY,
)

quality_check_duration_seconds = Histogram(
    name="silver_quality_check_duration_seconds",
    documentation="Time spent running a quality check in seconds",
    labelnames=["check_id"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def push_metrics(gateway: str | None = None, job: str = PUSH_JOB_NAME) -> bool:
    """
    Push the registry to a Prometheus Pushgateway

    Args:
        gateway: Gateway address (defaults to env var PROMETHEUS_PUSHGATEWAY)
        job: Job label

    Returns:
        True if metrics were pushed, False when no gateway is configured
    """
    address = gateway or os.getenv("PROMETHEUS_PUSHGATEWAY")
    if not address:
        return False
    push_to_gateway(address, job=job, registry=REGISTRY)
    return True


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    """
    Set a gauge metric value

    Args:
        gauge: Prometheus Gauge metric
        value: Value to set
        **labels: Label values for the metric
    """
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    histogram.labels(**labels).observe(value)


# =======================
# REFRESH-SPECIFIC HELPERS
# =======================

def record_entity_load(entity: str, status: str, rows_written: int, duration_seconds: float) -> None:
    """
    Record the outcome of one entity step.

    Args:
        entity: Entity type value
        status: success, failed or dry_run
        rows_written: Rows inserted into the silver extent
        duration_seconds: Step duration
    """
    observe_histogram(entity_load_duration_seconds, duration_seconds, entity=entity, status=status)
    if status == "success" and rows_written > 0:
        increment_counter(rows_loaded_total, rows_written, entity=entity)


def record_entity_failure(entity: str, error_code: str) -> None:
    increment_counter(entity_failures_total, 1, entity=entity, error_code=error_code)


def record_batch(state: str) -> None:
    increment_counter(batches_total, 1, state=state)


def record_quality_check(check_id: str, relation: str, violations: int, duration_seconds: float) -> None:
    """
    Record the result of one quality check.

    Args:
        check_id: Check identifier
        relation: Inspected silver relation
        violations: Number of violating rows
        duration_seconds: Query duration
    """
    set_gauge(quality_check_violations, violations, check_id=check_id, relation=relation)
    observe_histogram(quality_check_duration_seconds, duration_seconds, check_id=check_id)
