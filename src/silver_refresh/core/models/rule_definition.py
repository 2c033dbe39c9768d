"""
Rule definitions: the typed, declarative steps of the rule catalog.

Each definition is pure configuration. The steps in ``core.steps`` interpret
them. Definitions are parsed from YAML through the ``RuleDefinition``
discriminated union on the ``type`` field.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field, field_validator

from .entity_type import EntityType


class BaseRuleDefinition(BaseModel):
    """
    Fields shared by every rule step.

    Attributes:
        name: Rule name used in errors and logs (generated when omitted)
        enabled: Disabled rules are skipped by the evaluator
    """

    name: str | None = None
    enabled: bool = True

    category: ClassVar[str] = "cleanse"

    class Config:
        extra = "forbid"


class DeduplicateRule(BaseRuleDefinition):
    """Keep the most recent row per key."""

    type: Literal["deduplicate"]
    key: list[str] = Field(..., min_length=1)
    recency: str
    descending: bool = True

    category: ClassVar[str] = "deduplicate"


class TrimRule(BaseRuleDefinition):
    """Strip surrounding whitespace from string fields."""

    type: Literal["trim"]
    fields: list[str] = Field(..., min_length=1)


class DefaultIfNullRule(BaseRuleDefinition):
    """Substitute a constant for a null field."""

    type: Literal["default_if_null"]
    field: str
    value: Any


class StripPrefixRule(BaseRuleDefinition):
    """Remove a fixed prefix from an identifier when present."""

    type: Literal["strip_prefix"]
    field: str
    prefix: str = Field(..., min_length=1)


class RemoveCharsRule(BaseRuleDefinition):
    """Delete every occurrence of the given characters from a field."""

    type: Literal["remove_chars"]
    field: str
    chars: str = Field(..., min_length=1)


class SplitKeyRule(BaseRuleDefinition):
    """
    Split a composite key into a prefix field and the remaining key.

    The first ``prefix_length`` characters (after ``prefix_replace``
    substitutions) go to ``prefix_field``; the characters after the
    separator replace the original ``field`` value.
    """

    type: Literal["split_key"]
    field: str
    prefix_field: str
    prefix_length: int = Field(..., gt=0)
    separator_length: int = Field(1, ge=0)
    prefix_replace: dict[str, str] = Field(default_factory=dict)


class ParseYyyymmddRule(BaseRuleDefinition):
    """Convert 8-digit integer dates to calendar dates."""

    type: Literal["parse_yyyymmdd"]
    fields: list[str] = Field(..., min_length=1)


class NormalizeRule(BaseRuleDefinition):
    """
    Map raw codes to canonical labels through a closed lookup table.

    Codes are matched trimmed and upper-cased. Without a ``default`` an
    unmapped value is a rule evaluation error.
    """

    type: Literal["normalize"]
    field: str
    mapping: dict[str, str] = Field(..., min_length=1)
    default: str | None = None

    category: ClassVar[str] = "normalize"

    @field_validator("mapping", mode="before")
    @classmethod
    def normalize_codes(cls, v):
        if not isinstance(v, dict):
            return v
        return {str(code).strip().upper(): label for code, label in v.items()}

    def labels(self) -> set[str]:
        """Every value this rule can produce."""
        labels = set(self.mapping.values())
        if self.default is not None:
            labels.add(self.default)
        return labels


class LeadDateRule(BaseRuleDefinition):
    """
    Derive a field from the next row's date within a partition.

    Rows are ordered by ``order_by`` ascending with nulls first. The target
    of every row but the last is the next row's value shifted by
    ``offset_days``; the last row of a partition receives ``open_value``.
    """

    type: Literal["lead_date"]
    partition_by: list[str] = Field(..., min_length=1)
    order_by: str
    target: str
    offset_days: int = -1
    open_value: date | None = None
    tie_break: list[str] = Field(default_factory=list)

    category: ClassVar[str] = "derive"


class RecomputeProductRule(BaseRuleDefinition):
    """
    Replace a missing, non-positive or inconsistent value by the product of factors.

    A value counts as consistent when it lies within ``tolerance`` of the
    product.
    """

    type: Literal["recompute_product"]
    target: str
    factors: list[str] = Field(..., min_length=2)
    absolute: list[str] = Field(default_factory=list)
    tolerance: Decimal = Field(default=Decimal("0"), ge=0)

    category: ClassVar[str] = "validate"


class RecomputeQuotientRule(BaseRuleDefinition):
    """Replace a missing or non-positive value by numerator / denominator."""

    type: Literal["recompute_quotient"]
    target: str
    numerator: str
    denominator: str
    scale: int = Field(4, ge=0, le=12)

    category: ClassVar[str] = "validate"


class NullIfFutureRule(BaseRuleDefinition):
    """Null out dates later than the transform's as-of date."""

    type: Literal["null_if_future"]
    field: str

    category: ClassVar[str] = "validate"


RuleDefinition = Annotated[
    Union[
        DeduplicateRule,
        TrimRule,
        DefaultIfNullRule,
        StripPrefixRule,
        RemoveCharsRule,
        SplitKeyRule,
        ParseYyyymmddRule,
        NormalizeRule,
        LeadDateRule,
        RecomputeProductRule,
        RecomputeQuotientRule,
        NullIfFutureRule,
    ],
    Field(discriminator="type"),
]


class EntityRuleSet(BaseModel):
    """Ordered rule steps for one entity type. An empty list is a pass-through."""

    entity: EntityType
    rules: list[RuleDefinition] = Field(default_factory=list)

    class Config:
        extra = "forbid"

    def active_rules(self) -> list[BaseRuleDefinition]:
        """Enabled rules in declared order."""
        return [rule for rule in self.rules if rule.enabled]
