"""
Core models, rules and steps of the silver refresh engine.
"""
