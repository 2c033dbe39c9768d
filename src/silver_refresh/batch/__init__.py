"""
Full-refresh batch processing module.
"""

from .pipeline import LoadOrchestrator

__all__ = [
    "LoadOrchestrator",
]
