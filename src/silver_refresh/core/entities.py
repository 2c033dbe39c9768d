"""
Entity registry.

Binds each entity type to its table name, raw and cleansed models and key
columns. Schema names (bronze/silver) are supplied by the reader and writer,
so the same registry serves any pair of schemas.
"""

from pydantic import BaseModel

from silver_refresh.core.models import (
    CustomerDemographic,
    CustomerRecord,
    EntityType,
    LocationRecord,
    ProductCategory,
    ProductRecord,
    RawCustomerDemographic,
    RawCustomerRecord,
    RawLocationRecord,
    RawProductCategory,
    RawProductRecord,
    RawRecord,
    RawSalesRecord,
    SalesRecord,
    SilverRecord,
)


class EntityDefinition(BaseModel):
    """
    Static description of one entity type.

    Attributes:
        entity: Entity type
        table: Table name, identical in the bronze and silver schemas
        raw_model: Model a bronze row must parse into
        silver_model: Model every cleansed row must fit
        key_columns: Columns identifying a row (used for ordering and error reports)
    """

    entity: EntityType
    table: str
    raw_model: type[RawRecord]
    silver_model: type[SilverRecord]
    key_columns: tuple[str, ...]

    class Config:
        frozen = True

    def relation(self, schema: str) -> str:
        return f"{schema}.{self.table}"

    @property
    def raw_columns(self) -> list[str]:
        return list(self.raw_model.model_fields)

    @property
    def silver_columns(self) -> list[str]:
        return list(self.silver_model.model_fields)

    def record_key(self, row: dict) -> tuple | None:
        """Key values of a raw row, or None when the row has none of them."""
        if not isinstance(row, dict):
            return None
        values = tuple(row.get(column) for column in self.key_columns)
        if all(value is None for value in values):
            return None
        return values


ENTITY_DEFINITIONS: dict[EntityType, EntityDefinition] = {
    definition.entity: definition
    for definition in (
        EntityDefinition(
            entity=EntityType.CUSTOMER,
            table="crm_cust_info",
            raw_model=RawCustomerRecord,
            silver_model=CustomerRecord,
            key_columns=("cst_id",),
        ),
        EntityDefinition(
            entity=EntityType.PRODUCT,
            table="crm_prd_info",
            raw_model=RawProductRecord,
            silver_model=ProductRecord,
            key_columns=("prd_id",),
        ),
        EntityDefinition(
            entity=EntityType.SALES,
            table="crm_sales_details",
            raw_model=RawSalesRecord,
            silver_model=SalesRecord,
            key_columns=("sls_ord_num", "sls_prd_key"),
        ),
        EntityDefinition(
            entity=EntityType.CUSTOMER_DEMOGRAPHIC,
            table="erp_cust_az12",
            raw_model=RawCustomerDemographic,
            silver_model=CustomerDemographic,
            key_columns=("cid",),
        ),
        EntityDefinition(
            entity=EntityType.LOCATION,
            table="erp_loc_a101",
            raw_model=RawLocationRecord,
            silver_model=LocationRecord,
            key_columns=("cid",),
        ),
        EntityDefinition(
            entity=EntityType.PRODUCT_CATEGORY,
            table="erp_px_cat_g1v2",
            raw_model=RawProductCategory,
            silver_model=ProductCategory,
            key_columns=("id",),
        ),
    )
}

# Processing order of a full refresh
DECLARED_ORDER: tuple[EntityType, ...] = (
    EntityType.CUSTOMER,
    EntityType.PRODUCT,
    EntityType.SALES,
    EntityType.CUSTOMER_DEMOGRAPHIC,
    EntityType.LOCATION,
    EntityType.PRODUCT_CATEGORY,
)


def get_definition(entity: EntityType | str) -> EntityDefinition:
    """Look up the definition of an entity type."""
    return ENTITY_DEFINITIONS[EntityType.parse(entity)]
