"""
Full-refresh load orchestration.

Coordinates the flow per entity: read bronze snapshot → transform → replace
silver extent, strictly in sequence and fail-fast.
"""

from collections.abc import Callable, Generator, Iterable
from contextlib import closing
from datetime import datetime
from typing import Any, Protocol

from silver_refresh.core.entities import DECLARED_ORDER, EntityDefinition, get_definition
from silver_refresh.core.errors import EntityParseError
from silver_refresh.core.models import (
    BatchContext,
    BatchFailure,
    EntityLoadResult,
    EntityType,
    SilverRecord,
    TransformContext,
)
from silver_refresh.core.rules import TransformationEvaluator
from silver_refresh.observability.logger import get_logger, log_operation
from silver_refresh.observability.metrics import record_batch, record_entity_failure, record_entity_load

logger = get_logger("silver-refresh.batch")


class SnapshotReader(Protocol):
    def relation(self, definition: EntityDefinition) -> str: ...

    def read(self, definition: EntityDefinition) -> Generator[dict[str, Any], None, None]: ...


class ExtentWriter(Protocol):
    def relation(self, definition: EntityDefinition) -> str: ...

    def replace(self, definition: EntityDefinition, records: Iterable[SilverRecord]) -> int: ...


class LoadOrchestrator:
    """
    Runs full-refresh batches over the entity types.

    Failure model:
    1. The first error in any entity step aborts the batch
    2. Extents replaced earlier in the same batch stay replaced
    3. The failing entity's extent keeps its previous content
    4. The error is logged with entity and cause, then re-raised

    Re-running a batch on an unchanged bronze snapshot yields the same
    silver extents, so a failed batch is recovered by running it again.
    """

    def __init__(
        self,
        evaluator: TransformationEvaluator,
        reader: SnapshotReader,
        replacer: ExtentWriter,
        clock: Callable[[], datetime] | None = None
    ):
        """
        Initialize orchestrator.

        Args:
            evaluator: Transformation evaluator holding the rule catalog
            reader: Source of bronze snapshots
            replacer: Sink replacing silver extents
            clock: Returns the batch timestamp (defaults to current UTC time)
        """
        self.evaluator = evaluator
        self.reader = reader
        self.replacer = replacer
        self.clock = clock
        self.last_batch: BatchContext | None = None

    @staticmethod
    def resolve_entities(entity_types: Iterable[EntityType | str] | None = None) -> list[EntityType]:
        """
        Resolve the entity list of a batch.

        Args:
            entity_types: Entities in processing order; None means all, in declared order

        Raises:
            ValueError: On an unknown, duplicated or empty entity list
        """
        if entity_types is None:
            return list(DECLARED_ORDER)

        entities = [EntityType.parse(entity) for entity in entity_types]
        if not entities:
            raise ValueError("Entity list must not be empty")

        duplicates = sorted({e.value for e in entities if entities.count(e) > 1})
        if duplicates:
            raise ValueError(f"Entity types listed more than once: {', '.join(duplicates)}")

        return entities

    def run_batch(
        self,
        entity_types: Iterable[EntityType | str] | None = None,
        dry_run: bool = False
    ) -> BatchContext:
        """
        Refresh the silver extents of the given entity types.

        Args:
            entity_types: Entities in processing order (default: all, declared order)
            dry_run: Transform and count rows without touching any extent

        Returns:
            The completed BatchContext

        Raises:
            SilverRefreshError: The cause of an aborted batch; the aborted
                                context is available as ``last_batch``
        """
        entities = self.resolve_entities(entity_types)
        batch = BatchContext.new(dry_run=dry_run, now=self.clock() if self.clock else None)
        self.last_batch = batch
        transform_context = TransformContext(as_of=batch.as_of, ingested_at=batch.ingested_at)

        batch.start()
        logger.info(
            "Starting silver refresh batch",
            extra={
                "batch_id": batch.batch_id,
                "entities": [e.value for e in entities],
                "dry_run": dry_run,
                "as_of": batch.as_of.isoformat(),
            },
        )

        try:
            for entity in entities:
                self.run_entity(batch, transform_context, entity)
        except Exception:
            record_batch(batch.state.value)
            logger.error("Silver refresh batch aborted", extra=batch.summary())
            raise

        batch.complete()
        record_batch(batch.state.value)
        logger.info("Silver refresh batch completed", extra=batch.summary())
        return batch

    def run_entity(
        self,
        batch: BatchContext,
        transform_context: TransformContext,
        entity: EntityType
    ) -> EntityLoadResult:
        """
        Transform and replace one entity's extent within a running batch.

        The transform generator is consumed by the replacer inside its
        transaction, so a transform error rolls back the replacement. The
        snapshot stream is closed on exit, releasing its connection.
        """
        definition = get_definition(entity)
        source = self.reader.relation(definition)
        target = self.replacer.relation(definition)
        status = "dry_run" if batch.dry_run else "success"

        batch.begin_entity(entity.value)
        operation = log_operation(
            "Refresh silver extent",
            logger=logger,
            batch_id=batch.batch_id,
            entity=entity.value,
            source=source,
            target=target,
            dry_run=batch.dry_run,
        )

        try:
            with operation, closing(self.reader.read(definition)) as snapshot:
                records = self.evaluator.transform(entity, snapshot, transform_context)
                if batch.dry_run:
                    rows_written = sum(1 for _ in records)
                else:
                    rows_written = self.replacer.replace(definition, records)
                operation.add_fields(rows_written=rows_written)
        except Exception as e:
            failure = self.describe_failure(entity, e)
            batch.abort(
                failure,
                EntityLoadResult(
                    entity=entity.value,
                    source_relation=source,
                    target_relation=target,
                    duration_ms=operation.duration_seconds * 1000,
                    status="failed",
                ),
            )
            record_entity_load(entity.value, "failed", 0, operation.duration_seconds)
            record_entity_failure(entity.value, failure.error_code)
            raise

        result = EntityLoadResult(
            entity=entity.value,
            source_relation=source,
            target_relation=target,
            rows_written=rows_written,
            duration_ms=operation.duration_seconds * 1000,
            status=status,
        )
        batch.complete_entity(result)
        record_entity_load(entity.value, status, rows_written, operation.duration_seconds)
        return result

    @staticmethod
    def describe_failure(entity: EntityType, error: Exception) -> BatchFailure:
        """Build the batch failure record of an entity step error."""
        record_key = getattr(error, "record_key", None) if isinstance(error, EntityParseError) else None
        return BatchFailure(
            entity=entity.value,
            error_type=type(error).__name__,
            error_code=getattr(error, "error_code", None) or "UNEXPECTED",
            message=str(error),
            rule_name=getattr(error, "rule_name", None),
            record_key=repr(record_key) if record_key is not None else None,
        )
