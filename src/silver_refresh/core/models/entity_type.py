"""
EntityType enumerates the six entity types refreshed from bronze to silver.
"""

from enum import Enum


class EntityType(str, Enum):
    """
    Entity types handled by the refresh engine.

    The value is the name used in the rule catalog, on the command line and
    in log records.
    """

    CUSTOMER = "customer"
    PRODUCT = "product"
    SALES = "sales"
    CUSTOMER_DEMOGRAPHIC = "customer_demographic"
    LOCATION = "location"
    PRODUCT_CATEGORY = "product_category"

    @classmethod
    def parse(cls, value: "str | EntityType") -> "EntityType":
        """Resolve an entity type from its value, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(e.value for e in cls)
            raise ValueError(f"Unknown entity type '{value}'. Expected one of: {valid}")
