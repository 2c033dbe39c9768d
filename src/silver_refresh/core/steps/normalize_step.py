"""
NormalizeStep - maps raw codes onto a closed set of canonical labels.
"""

from typing import Any

from silver_refresh.core.models import TransformContext

from .base_step import RowStep, StepError


class NormalizeStep(RowStep):
    """
    Closed-world code mapping.

    Codes are compared trimmed and upper-cased. Nulls and unmapped codes
    take the rule's default; without a default they are an error, never a
    pass-through.
    """

    def map_value(self, value: Any) -> str:
        definition = self.definition
        code = str(value).strip().upper() if value is not None else None

        if code is not None and code in definition.mapping:
            return definition.mapping[code]

        if definition.default is None:
            raise StepError(
                self.name,
                definition.field,
                f"no mapping for {value!r} and the lookup table has no default",
            )
        return definition.default

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        field_name = self.definition.field
        row[field_name] = self.map_value(self.field_value(row, field_name))
        return row
