"""
Validate-and-substitute steps.

Each step detects a business-rule violation on one field and replaces the
value with a recomputed one; valid values pass through unchanged.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from silver_refresh.core.models import TransformContext

from .base_step import RowStep, StepError


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    return Decimal(str(value))


class RecomputeProductStep(RowStep):
    """
    Recompute a value as the product of other fields when it is invalid.

    The value is invalid when it is null, not positive, or (when every
    factor is known) further than ``tolerance`` from the product. Fields
    listed in ``absolute`` enter the product as absolute values.
    """

    def expected_value(self, row: dict[str, Any]) -> Decimal | None:
        result = Decimal(1)
        for factor in self.definition.factors:
            value = to_decimal(self.field_value(row, factor))
            if value is None:
                return None
            if factor in self.definition.absolute:
                value = abs(value)
            result *= value
        return result

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        target = self.definition.target
        try:
            current = to_decimal(self.field_value(row, target))
            expected = self.expected_value(row)
        except (TypeError, ArithmeticError) as e:
            raise StepError(self.name, target, f"cannot compute product: {e}")

        if current is None or current <= 0 or (
            expected is not None and abs(current - expected) > self.definition.tolerance
        ):
            row[target] = expected
        return row


class RecomputeQuotientStep(RowStep):
    """
    Recompute a value as numerator / denominator when it is null or not positive.

    The quotient is rounded half-up to ``scale`` decimals; a null or zero
    denominator yields null.
    """

    def __init__(self, definition):
        super().__init__(definition)
        self._quantum = Decimal(1).scaleb(-definition.scale)

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        definition = self.definition
        try:
            current = to_decimal(self.field_value(row, definition.target))
            if current is not None and current > 0:
                return row

            numerator = to_decimal(self.field_value(row, definition.numerator))
            denominator = to_decimal(self.field_value(row, definition.denominator))
        except (TypeError, ArithmeticError) as e:
            raise StepError(self.name, definition.target, f"cannot compute quotient: {e}")

        if numerator is None or denominator is None or denominator == 0:
            row[definition.target] = None
        else:
            row[definition.target] = (numerator / denominator).quantize(self._quantum, rounding=ROUND_HALF_UP)
        return row


class NullIfFutureStep(RowStep):
    """Null out a date that lies after the transform's as-of date."""

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        field_name = self.definition.field
        value = self.field_value(row, field_name)
        try:
            if value is not None and value > context.as_of:
                row[field_name] = None
        except TypeError as e:
            raise StepError(self.name, field_name, f"cannot compare with as-of date: {e}")
        return row
