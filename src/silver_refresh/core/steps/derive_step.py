"""
LeadDateStep - derives a field from the next row of the same partition.

Equivalent to LEAD(order_by, 1, open_value) OVER (PARTITION BY ... ORDER BY
order_by) shifted by ``offset_days``, implemented as partition, sort and a
pairwise scan over neighbours.
"""

from collections.abc import Iterable, Iterator
from datetime import timedelta
from typing import Any

from silver_refresh.core.models import TransformContext

from .base_step import BaseStep, StepError, canonical_row, nulls_first


class LeadDateStep(BaseStep):
    """
    Cross-row derivation used for versioned records.

    For start dates d1 < d2 < d3 of one partition and offset -1 the derived
    end dates are d2-1, d3-1 and ``open_value``.
    """

    def apply(self, rows: Iterable[dict[str, Any]], context: TransformContext) -> Iterator[dict[str, Any]]:
        definition = self.definition
        partitions: dict[tuple, list[dict[str, Any]]] = {}

        for row in rows:
            key = tuple(self.field_value(row, field_name) for field_name in definition.partition_by)
            self.field_value(row, definition.order_by)
            partitions.setdefault(key, []).append(row)

        try:
            ordered_keys = sorted(partitions, key=lambda key: tuple(nulls_first(v) for v in key))
        except TypeError as e:
            raise StepError(self.name, ",".join(definition.partition_by), f"partition values are not comparable: {e}")

        for key in ordered_keys:
            yield from self.derive_partition(partitions[key])

    def sort_key(self, row: dict[str, Any]) -> tuple:
        definition = self.definition
        return (
            nulls_first(row[definition.order_by]),
            tuple(nulls_first(row.get(field_name)) for field_name in definition.tie_break),
            canonical_row(row),
        )

    def derive_partition(self, partition: list[dict[str, Any]]) -> list[dict[str, Any]]:
        definition = self.definition
        try:
            ordered = sorted(partition, key=self.sort_key)
        except TypeError as e:
            raise StepError(self.name, definition.order_by, f"order values are not comparable: {e}")

        offset = timedelta(days=definition.offset_days)
        for current, following in zip(ordered, ordered[1:] + [None]):
            if following is None:
                current[definition.target] = definition.open_value
                continue
            next_value = following[definition.order_by]
            current[definition.target] = next_value + offset if next_value is not None else None

        return ordered
