"""
Cleanse steps: per-field fixups that never look at other rows.
"""

from datetime import date
from typing import Any

from silver_refresh.core.models import TransformContext

from .base_step import RowStep, StepError


class TrimStep(RowStep):
    """Strip surrounding whitespace from string fields. Non-strings pass through."""

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        for field_name in self.definition.fields:
            value = self.field_value(row, field_name)
            if isinstance(value, str):
                row[field_name] = value.strip()
        return row


class DefaultIfNullStep(RowStep):
    """Substitute a constant for a null value."""

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        if self.field_value(row, self.definition.field) is None:
            row[self.definition.field] = self.definition.value
        return row


class StripPrefixStep(RowStep):
    """Remove a fixed prefix (e.g. "NAS") from an identifier."""

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        value = self.field_value(row, self.definition.field)
        prefix = self.definition.prefix
        if isinstance(value, str) and value.startswith(prefix):
            row[self.definition.field] = value[len(prefix):]
        return row


class RemoveCharsStep(RowStep):
    """Delete punctuation noise from an identifier."""

    def __init__(self, definition):
        super().__init__(definition)
        self._table = str.maketrans("", "", definition.chars)

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        value = self.field_value(row, self.definition.field)
        if isinstance(value, str):
            row[self.definition.field] = value.translate(self._table)
        return row


class SplitKeyStep(RowStep):
    """
    Split a composite key into a prefix field and the remaining key.

    Example with prefix_length=5, separator_length=1 and {"-": "_"}:
    "CO-RF-FR-R92B-58" -> prefix "CO_RF", key "FR-R92B-58".
    """

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        definition = self.definition
        value = self.field_value(row, definition.field)

        if value is None:
            row[definition.prefix_field] = None
            return row
        if not isinstance(value, str):
            raise StepError(self.name, definition.field, f"expected a string key, got {type(value).__name__}")

        prefix = value[:definition.prefix_length]
        for old, new in definition.prefix_replace.items():
            prefix = prefix.replace(old, new)

        row[definition.prefix_field] = prefix
        row[definition.field] = value[definition.prefix_length + definition.separator_length:]
        return row


def parse_yyyymmdd(value: Any) -> date | None:
    """
    Parse an integer date in YYYYMMDD form.

    Returns None for null, zero, negative, wrong-length and impossible dates.
    """
    if value is None or isinstance(value, bool):
        return None

    text = str(value).strip()
    if len(text) != 8 or not text.isdigit():
        return None

    try:
        return date(int(text[:4]), int(text[4:6]), int(text[6:]))
    except ValueError:
        return None


class ParseYyyymmddStep(RowStep):
    """Convert 8-digit integer dates to calendar dates; unparsable values become null."""

    def transform_row(self, row: dict[str, Any], context: TransformContext) -> dict[str, Any]:
        for field_name in self.definition.fields:
            row[field_name] = parse_yyyymmdd(self.field_value(row, field_name))
        return row
