"""
TransformContext model: the inputs of a transform that do not come from the snapshot.
"""

from datetime import date, datetime, timezone

from pydantic import BaseModel


class TransformContext(BaseModel):
    """
    Clock values used while transforming one entity.

    Attributes:
        as_of: Business date; dates after it are treated as "in the future"
        ingested_at: Load timestamp stamped on every cleansed record
    """

    as_of: date
    ingested_at: datetime

    class Config:
        frozen = True

    @classmethod
    def now(cls) -> "TransformContext":
        current = datetime.now(timezone.utc)
        return cls(as_of=current.date(), ingested_at=current)
