"""
Base step interface for all rule steps.

A step interprets one rule definition. It consumes an iterator of row
dictionaries and yields row dictionaries; row-local steps stay lazy, window
steps have to see a whole partition before they can emit anything.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from typing import Any

from silver_refresh.core.models import BaseRuleDefinition, TransformContext


class StepError(Exception):
    """Raised when a rule step cannot be applied to a row."""

    def __init__(self, rule_name: str, field_name: str | None, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


def canonical_row(row: dict[str, Any]) -> str:
    """Stable serialisation of a row, used as the last-resort sort key."""
    return json.dumps(row, sort_keys=True, default=str)


def nulls_first(value: Any) -> tuple[bool, Any]:
    """Sort key placing None before any other value."""
    return (value is not None, value)


class BaseStep(ABC):
    """
    Abstract base class for all rule steps.

    Rows passed between steps are plain dictionaries owned by the
    evaluator, so steps update them in place.
    """

    def __init__(self, definition: BaseRuleDefinition):
        """
        Initialize step.

        Args:
            definition: The rule definition this step interprets
        """
        self.definition = definition
        self.name = definition.name or definition.type

    @abstractmethod
    def apply(self, rows: Iterable[dict[str, Any]], context: TransformContext) -> Iterator[dict[str, Any]]:
        """
        Apply the rule to a stream of rows.

        Args:
            rows: Rows produced by the previous step
            context: Clock values of the current transform

        Yields:
            Transformed rows

        Raises:
            StepError: If the rule cannot be applied
        """

    @property
    def rule_type(self) -> str:
        return self.definition.type

    @property
    def category(self) -> str:
        return self.definition.category

    def field_value(self, row: dict[str, Any], field_name: str) -> Any:
        """Read a field, failing with a StepError when the row does not have it."""
        try:
            return row[field_name]
        except KeyError:
            raise StepError(self.name, field_name, "field is not present in the row")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"


class RowStep(BaseStep):
    """Step that transforms each row independently and keeps the stream lazy."""

    def apply(self, rows: Iterable[dict[str, Any]], context: TransformContext) -> Iterator[dict[str, Any]]:
        for row in rows:
            yield self.transform_row(row, context)

    @abstractmethod
    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        """Transform a single row."""
