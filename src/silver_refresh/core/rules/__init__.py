"""
Rule catalog and transformation evaluator.
"""

from .rule_config import RuleCatalog, RuleCatalogBuilder, RuleCatalogLoader, load_catalog
from .rule_engine import TransformationEvaluator

__all__ = [
    "RuleCatalog",
    "RuleCatalogBuilder",
    "RuleCatalogLoader",
    "load_catalog",
    "TransformationEvaluator",
]
