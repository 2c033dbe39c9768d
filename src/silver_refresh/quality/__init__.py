"""
Post-load quality checks over the silver layer.
"""

from .checks import CheckFactory, QualityCheck, build_checks
from .suite import QualitySuite

__all__ = [
    "CheckFactory",
    "QualityCheck",
    "QualitySuite",
    "build_checks",
]
