"""
silver-refresh: full-refresh bronze-to-silver transformation engine.
"""

__version__ = "0.1.0"
