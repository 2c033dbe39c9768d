"""
Transformation evaluator: interprets the rule catalog over raw records.

The evaluator parses raw rows into their typed shape, chains the entity's
rule steps as lazy generators and emits cleansed silver records. It has no
knowledge of any particular entity: everything entity-specific comes from
the catalog and the entity registry.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from silver_refresh.core.entities import EntityDefinition, get_definition
from silver_refresh.core.errors import EntityParseError, RuleCatalogError, RuleEvaluationError
from silver_refresh.core.models import EntityType, SilverRecord, TransformContext
from silver_refresh.core.rules.rule_config import RuleCatalog
from silver_refresh.core.steps import (
    BaseStep,
    DeduplicateStep,
    DefaultIfNullStep,
    LeadDateStep,
    NormalizeStep,
    NullIfFutureStep,
    ParseYyyymmddStep,
    RecomputeProductStep,
    RecomputeQuotientStep,
    RemoveCharsStep,
    SplitKeyStep,
    StepError,
    StripPrefixStep,
    TrimStep,
)

# Shape check applied after the last step
CLEANSED_SHAPE_RULE = "cleansed_shape"


class TransformationEvaluator:
    """
    Applies an entity's ordered rule steps to a stream of raw records.

    Steps are built once per catalog. ``transform`` is deterministic: the
    same raw records and context always produce the same records in the
    same order.
    """

    STEP_REGISTRY: dict[str, type[BaseStep]] = {
        "deduplicate": DeduplicateStep,
        "trim": TrimStep,
        "default_if_null": DefaultIfNullStep,
        "strip_prefix": StripPrefixStep,
        "remove_chars": RemoveCharsStep,
        "split_key": SplitKeyStep,
        "parse_yyyymmdd": ParseYyyymmddStep,
        "normalize": NormalizeStep,
        "lead_date": LeadDateStep,
        "recompute_product": RecomputeProductStep,
        "recompute_quotient": RecomputeQuotientStep,
        "null_if_future": NullIfFutureStep,
    }

    def __init__(self, catalog: RuleCatalog):
        """
        Initialize the evaluator.

        Args:
            catalog: Rule catalog to interpret
        """
        self.catalog = catalog
        self.steps: dict[EntityType, list[BaseStep]] = {}
        self._build_steps()

    def _build_steps(self) -> None:
        """Build step instances from the catalog's rule definitions."""
        for entity, rule_set in self.catalog.rule_sets.items():
            steps = []
            for rule in rule_set.active_rules():
                step_class = self.STEP_REGISTRY.get(rule.type)
                if not step_class:
                    raise RuleCatalogError(f"Unknown rule type: {rule.type}")
                steps.append(step_class(rule))
            self.steps[entity] = steps

    def steps_for(self, entity_type: EntityType | str) -> list[BaseStep]:
        """
        Get the step chain of an entity type.

        Raises:
            RuleCatalogError: If the catalog has no rule set for the entity
        """
        entity = EntityType.parse(entity_type)
        if entity not in self.steps:
            raise RuleCatalogError(f"Rule catalog has no rule set for entity '{entity.value}'")
        return self.steps[entity]

    def transform(
        self,
        entity_type: EntityType | str,
        raw_records: Iterable[Mapping[str, Any] | BaseModel],
        context: TransformContext | None = None
    ) -> Iterator[SilverRecord]:
        """
        Transform raw records of one entity type into cleansed records.

        The result is a generator; raw records are pulled as it is consumed.
        Row-local steps stay streaming, deduplicate and lead_date buffer
        the rows they need.

        Args:
            entity_type: Entity type of the records
            raw_records: Raw rows as mappings of column name to value
            context: Clock values; defaults to the current time

        Yields:
            Cleansed records of the entity's silver model

        Raises:
            RuleCatalogError: If the entity has no rule set
            EntityParseError: If a raw record is malformed
            RuleEvaluationError: If a rule cannot be applied to a record
        """
        entity = EntityType.parse(entity_type)
        definition = get_definition(entity)
        steps = self.steps_for(entity)
        context = context or TransformContext.now()

        return self._run(definition, steps, raw_records, context)

    def _run(
        self,
        definition: EntityDefinition,
        steps: list[BaseStep],
        raw_records: Iterable[Mapping[str, Any] | BaseModel],
        context: TransformContext
    ) -> Iterator[SilverRecord]:
        rows: Iterator[dict[str, Any]] = self._parse(definition, raw_records)
        for step in steps:
            rows = self._guard(definition.entity, step, step.apply(rows, context))

        for row in rows:
            yield self._to_silver(definition, row, context)

    def _parse(self, definition: EntityDefinition, raw_records: Iterable[Mapping[str, Any] | BaseModel]) -> Iterator[dict[str, Any]]:
        entity = definition.entity.value
        for raw in raw_records:
            if isinstance(raw, BaseModel):
                raw = raw.model_dump()
            if not isinstance(raw, Mapping):
                raise EntityParseError(entity, None, f"expected a mapping, got {type(raw).__name__}")

            raw = dict(raw)
            try:
                parsed = definition.raw_model.model_validate(raw)
            except ValidationError as e:
                raise EntityParseError(entity, definition.record_key(raw), _describe_errors(e))

            yield parsed.model_dump()

    def _guard(self, entity: EntityType, step: BaseStep, rows: Iterator[dict[str, Any]]) -> Iterator[dict[str, Any]]:
        """Re-raise low-level failures of a step as RuleEvaluationError."""
        try:
            yield from rows
        except StepError as e:
            raise RuleEvaluationError(entity.value, e.rule_name, f"{e.field_name}: {e.message}")
        except (KeyError, TypeError, ArithmeticError) as e:
            raise RuleEvaluationError(entity.value, step.name, f"{type(e).__name__}: {e}")

    def _to_silver(self, definition: EntityDefinition, row: dict[str, Any], context: TransformContext) -> SilverRecord:
        try:
            return definition.silver_model.model_validate({**row, "ingested_at": context.ingested_at})
        except ValidationError as e:
            raise RuleEvaluationError(
                definition.entity.value,
                CLEANSED_SHAPE_RULE,
                f"record {definition.record_key(row)!r} does not fit {definition.silver_model.__name__}: "
                f"{_describe_errors(e)}",
            )

    def describe(self, entity_type: EntityType | str) -> list[dict[str, str]]:
        """Name, type and category of each active step of an entity, in order."""
        return [
            {"name": step.name, "type": step.rule_type, "category": step.category}
            for step in self.steps_for(entity_type)
        ]

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule counts and types
        """
        return self.catalog.get_rule_summary()


def _describe_errors(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in item['loc']) or '<record>'}: {item['msg']}"
        for item in error.errors()
    )
