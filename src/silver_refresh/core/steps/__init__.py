"""
Rule step implementations.

Provides the cleanse, normalize, deduplicate, derive and
validate-and-substitute steps interpreted by the transformation evaluator.
"""

from .base_step import BaseStep, RowStep, StepError
from .cleanse_steps import (
    DefaultIfNullStep,
    ParseYyyymmddStep,
    RemoveCharsStep,
    SplitKeyStep,
    StripPrefixStep,
    TrimStep,
)
from .deduplicate_step import DeduplicateStep
from .derive_step import LeadDateStep
from .normalize_step import NormalizeStep
from .substitute_steps import NullIfFutureStep, RecomputeProductStep, RecomputeQuotientStep

__all__ = [
    "BaseStep",
    "RowStep",
    "StepError",
    "DeduplicateStep",
    "TrimStep",
    "DefaultIfNullStep",
    "StripPrefixStep",
    "RemoveCharsStep",
    "SplitKeyStep",
    "ParseYyyymmddStep",
    "NormalizeStep",
    "LeadDateStep",
    "RecomputeProductStep",
    "RecomputeQuotientStep",
    "NullIfFutureStep",
]
