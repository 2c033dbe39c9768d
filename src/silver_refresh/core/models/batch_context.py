"""
BatchContext model: the explicit state of one full-refresh batch run.

The context is created by the orchestrator for each ``run_batch`` call and
threaded through every entity step; there is no module-level batch state.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchState(str, Enum):
    """Lifecycle of a batch: not_started -> running -> aborted | completed."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"

    @property
    def terminal(self) -> bool:
        return self in (BatchState.ABORTED, BatchState.COMPLETED)


class EntityLoadResult(BaseModel):
    """
    Outcome of one entity step.

    Attributes:
        entity: Entity type value
        source_relation: Bronze relation that was read
        target_relation: Silver relation that was replaced
        rows_written: Rows inserted (or counted, for a dry run)
        duration_ms: Wall-clock duration of transform + replace
        status: "success", "failed" or "dry_run"
    """

    entity: str
    source_relation: str
    target_relation: str
    rows_written: int = 0
    duration_ms: float = 0.0
    status: Literal["success", "failed", "dry_run"] = "success"


class BatchFailure(BaseModel):
    """Cause of an aborted batch."""

    entity: str
    error_type: str
    error_code: str
    message: str
    rule_name: str | None = None
    record_key: str | None = None


class BatchContext(BaseModel):
    """
    State of a batch run.

    Attributes:
        batch_id: Unique identifier of the run
        as_of: Business date used by date-sensitive rules
        ingested_at: Timestamp stamped on every cleansed record
        state: Current lifecycle state
        current_entity: Entity being processed while running
        entity_results: Results of entity steps, in processing order
        failure: Cause of the abort, if any
        dry_run: Whether extents were left untouched
    """

    batch_id: str = Field(default_factory=lambda: uuid4().hex)
    as_of: date
    ingested_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    state: BatchState = BatchState.NOT_STARTED
    current_entity: str | None = None
    entity_results: list[EntityLoadResult] = Field(default_factory=list)
    failure: BatchFailure | None = None
    dry_run: bool = False

    @classmethod
    def new(cls, dry_run: bool = False, now: datetime | None = None) -> "BatchContext":
        """Create a context whose as-of date and load timestamp come from ``now``."""
        now = now or _utcnow()
        return cls(as_of=now.date(), ingested_at=now, dry_run=dry_run)

    def start(self) -> None:
        self._require(BatchState.NOT_STARTED, "start")
        self.state = BatchState.RUNNING
        self.started_at = _utcnow()

    def begin_entity(self, entity: str) -> None:
        self._require(BatchState.RUNNING, "begin an entity")
        self.current_entity = entity

    def complete_entity(self, result: EntityLoadResult) -> None:
        self._require(BatchState.RUNNING, "complete an entity")
        self.entity_results.append(result)
        self.current_entity = None

    def abort(self, failure: BatchFailure, result: EntityLoadResult | None = None) -> None:
        self._require(BatchState.RUNNING, "abort")
        if result is not None:
            self.entity_results.append(result)
        self.failure = failure
        self.state = BatchState.ABORTED
        self.finished_at = _utcnow()

    def complete(self) -> None:
        self._require(BatchState.RUNNING, "complete")
        self.current_entity = None
        self.state = BatchState.COMPLETED
        self.finished_at = _utcnow()

    @property
    def total_duration_ms(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at or _utcnow()
        return (end - self.started_at).total_seconds() * 1000

    @property
    def total_rows_written(self) -> int:
        return sum(r.rows_written for r in self.entity_results if r.status != "failed")

    def summary(self) -> dict:
        """Flat summary used for the batch log line and CLI output."""
        return {
            "batch_id": self.batch_id,
            "state": self.state.value,
            "dry_run": self.dry_run,
            "entities_loaded": [r.entity for r in self.entity_results if r.status != "failed"],
            "total_rows": self.total_rows_written,
            "total_duration_ms": round(self.total_duration_ms, 3),
            "failed_entity": self.failure.entity if self.failure else None,
        }

    def _require(self, expected: BatchState, action: str) -> None:
        if self.state != expected:
            raise RuntimeError(
                f"Cannot {action} batch {self.batch_id} in state '{self.state.value}'"
            )
