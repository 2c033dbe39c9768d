"""
Core data models for the silver refresh engine.

All models use Pydantic for runtime validation and type safety.
"""

from .batch_context import BatchContext, BatchFailure, BatchState, EntityLoadResult
from .entity_type import EntityType
from .quality_result import CheckResult, QualityReport
from .raw_records import (
    RawCustomerDemographic,
    RawCustomerRecord,
    RawLocationRecord,
    RawProductCategory,
    RawProductRecord,
    RawRecord,
    RawSalesRecord,
)
from .rule_definition import (
    BaseRuleDefinition,
    EntityRuleSet,
    NormalizeRule,
    RuleDefinition,
)
from .silver_records import (
    CustomerDemographic,
    CustomerRecord,
    LocationRecord,
    ProductCategory,
    ProductRecord,
    SalesRecord,
    SilverRecord,
)
from .transform_context import TransformContext

__all__ = [
    "EntityType",
    "RawRecord",
    "RawCustomerRecord",
    "RawProductRecord",
    "RawSalesRecord",
    "RawCustomerDemographic",
    "RawLocationRecord",
    "RawProductCategory",
    "SilverRecord",
    "CustomerRecord",
    "ProductRecord",
    "SalesRecord",
    "CustomerDemographic",
    "LocationRecord",
    "ProductCategory",
    "BaseRuleDefinition",
    "RuleDefinition",
    "NormalizeRule",
    "EntityRuleSet",
    "BatchContext",
    "BatchFailure",
    "BatchState",
    "EntityLoadResult",
    "CheckResult",
    "QualityReport",
    "TransformContext",
]
