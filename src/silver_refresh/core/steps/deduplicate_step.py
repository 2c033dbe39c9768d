"""
DeduplicateStep - keeps the most recent row per key.
"""

from collections.abc import Iterable, Iterator
from typing import Any

from silver_refresh.core.models import TransformContext

from .base_step import BaseStep, StepError, canonical_row


class DeduplicateStep(BaseStep):
    """
    Partition rows by key, rank by recency and keep rank 1.

    Rows with a null key component are dropped. Null recency ranks last.
    Rows with equal recency are ranked by their canonical serialisation
    (lowest first), so the surviving row does not depend on input order.
    Output is ordered by key.
    """

    def apply(self, rows: Iterable[dict[str, Any]], context: TransformContext) -> Iterator[dict[str, Any]]:
        definition = self.definition
        partitions: dict[tuple, list[dict[str, Any]]] = {}

        for row in rows:
            key = tuple(self.field_value(row, field_name) for field_name in definition.key)
            if any(value is None for value in key):
                continue
            self.field_value(row, definition.recency)
            partitions.setdefault(key, []).append(row)

        try:
            ordered_keys = sorted(partitions)
        except TypeError as e:
            raise StepError(self.name, ",".join(definition.key), f"key values are not comparable: {e}")

        for key in ordered_keys:
            yield self.latest(partitions[key])

    def latest(self, candidates: list[dict[str, Any]]) -> dict[str, Any]:
        """Return the rank-1 row of one partition."""
        recency = self.definition.recency
        ranked = sorted(candidates, key=canonical_row)

        try:
            if self.definition.descending:
                # reverse=True keeps the canonical order among equal recency
                ranked.sort(key=lambda row: (row[recency] is not None, row[recency]), reverse=True)
            else:
                ranked.sort(key=lambda row: (row[recency] is None, row[recency]))
        except TypeError as e:
            raise StepError(self.name, recency, f"recency values are not comparable: {e}")

        return ranked[0]
