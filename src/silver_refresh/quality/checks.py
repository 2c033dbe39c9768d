"""
Quality check catalogue for the silver layer.

Every check is a read-only query against one silver relation that returns
the rows violating an invariant. Closed label sets and the product version
derivation are taken from the rule catalog, so the checks and the
transformations cannot drift apart.
"""

from datetime import date, datetime, timezone
from typing import Any

from psycopg import sql
from pydantic import BaseModel

from silver_refresh.core.entities import get_definition
from silver_refresh.core.models import EntityType
from silver_refresh.core.models.rule_definition import LeadDateRule, SplitKeyRule
from silver_refresh.core.rules import RuleCatalog
from silver_refresh.utils.validation import sanitize_sql_identifier

# Maximum allowed |sales - quantity * price|
SALES_TOLERANCE = "0.01"

# Earliest plausible birthdate
MIN_BIRTHDATE = date(1920, 1, 1)

DEFAULT_OPEN_END_DATE = date(9999, 12, 31)


class QualityCheck(BaseModel):
    """
    One executable quality check.

    Attributes:
        check_id: Stable identifier (e.g. "PROD-05")
        entity: Entity whose silver relation is inspected
        relation: Qualified silver relation name
        description: Invariant the check asserts
        query: Composed SQL returning violating rows
        params: Query parameters
    """

    check_id: str
    entity: EntityType
    relation: str
    description: str
    query: Any
    params: tuple = ()

    class Config:
        arbitrary_types_allowed = True
        frozen = True


class CheckFactory:
    """Builds QualityCheck instances against a pair of bronze/silver schemas."""

    def __init__(self, silver_schema: str = "silver", bronze_schema: str = "bronze"):
        self.silver_schema = sanitize_sql_identifier(silver_schema, "silver schema")
        self.bronze_schema = sanitize_sql_identifier(bronze_schema, "bronze schema")

    def silver(self, entity: EntityType) -> sql.Identifier:
        return sql.Identifier(self.silver_schema, get_definition(entity).table)

    def bronze(self, entity: EntityType) -> sql.Identifier:
        return sql.Identifier(self.bronze_schema, get_definition(entity).table)

    def check(
        self,
        check_id: str,
        entity: EntityType,
        description: str,
        query: sql.Composable,
        params: tuple = ()
    ) -> QualityCheck:
        return QualityCheck(
            check_id=check_id,
            entity=entity,
            relation=get_definition(entity).relation(self.silver_schema),
            description=description,
            query=query,
            params=params,
        )

    def rows_where(
        self,
        check_id: str,
        entity: EntityType,
        description: str,
        columns: list[str],
        condition: str,
        params: tuple = ()
    ) -> QualityCheck:
        """Rows of the silver relation matching a violation condition."""
        query = sql.SQL("SELECT {columns} FROM {relation} WHERE {condition}").format(
            columns=_columns(columns),
            relation=self.silver(entity),
            condition=sql.SQL(condition),
        )
        return self.check(check_id, entity, description, query, params)

    def not_null_unique(self, check_id: str, entity: EntityType, key: list[str]) -> QualityCheck:
        """Key values that are null (any component) or occur more than once."""
        null_condition = sql.SQL(" OR ").join(
            sql.SQL("{} IS NULL").format(sql.Identifier(column)) for column in key
        )
        query = sql.SQL(
            "SELECT {key}, count(*) AS occurrences FROM {relation} "
            "GROUP BY {key} HAVING count(*) > 1 OR {null_condition} ORDER BY {key}"
        ).format(key=_columns(key), relation=self.silver(entity), null_condition=null_condition)
        return self.check(check_id, entity, f"{', '.join(key)} must be non-null and unique", query)

    def not_null(self, check_id: str, entity: EntityType, column: str) -> QualityCheck:
        query = sql.SQL("SELECT * FROM {relation} WHERE {column} IS NULL").format(
            relation=self.silver(entity), column=sql.Identifier(column)
        )
        return self.check(check_id, entity, f"{column} must be non-null", query)

    def unique(self, check_id: str, entity: EntityType, column: str) -> QualityCheck:
        query = sql.SQL(
            "SELECT {column}, count(*) AS occurrences FROM {relation} "
            "WHERE {column} IS NOT NULL GROUP BY {column} HAVING count(*) > 1 ORDER BY {column}"
        ).format(relation=self.silver(entity), column=sql.Identifier(column))
        return self.check(check_id, entity, f"{column} must be unique", query)

    def closed_set(self, check_id: str, entity: EntityType, column: str, labels: list[str]) -> QualityCheck:
        """Distinct values outside the allowed label set (null included)."""
        query = sql.SQL(
            "SELECT DISTINCT {column} FROM {relation} "
            "WHERE {column} IS NULL OR NOT ({column} = ANY(%s::text[])) ORDER BY {column}"
        ).format(relation=self.silver(entity), column=sql.Identifier(column))
        return self.check(
            check_id, entity, f"{column} must be one of: {', '.join(labels)}", query, (list(labels),)
        )

    def version_chain(
        self, check_id: str, rule: LeadDateRule, entity: EntityType, partition_by: list[str] | None = None
    ) -> QualityCheck:
        """
        Rows whose derived date differs from next-version start plus offset (or the open value).

        ``partition_by`` names the silver columns holding the partition values
        (defaults to the rule's own fields).
        """
        partition_by = partition_by or rule.partition_by
        partition = _columns(partition_by)
        order = sql.SQL(", ").join(
            [sql.SQL("{} NULLS FIRST").format(sql.Identifier(column)) for column in [rule.order_by, *rule.tie_break]]
        )
        query = sql.SQL(
            "SELECT * FROM ("
            "SELECT {columns}, "
            "LEAD({order_by}, 1, %s::date - %s::integer) OVER (PARTITION BY {partition} ORDER BY {order}) "
            "+ %s::integer AS expected_value "
            "FROM {relation}"
            ") AS versions WHERE {target} IS DISTINCT FROM expected_value"
        ).format(
            columns=_columns([*get_definition(entity).key_columns, *partition_by, rule.order_by, rule.target]),
            order_by=sql.Identifier(rule.order_by),
            partition=partition,
            order=order,
            relation=self.silver(entity),
            target=sql.Identifier(rule.target),
        )
        return self.check(
            check_id,
            entity,
            f"{rule.target} must equal the next {rule.order_by} {rule.offset_days:+d} day(s); "
            f"latest version {rule.open_value}",
            query,
            (rule.open_value, rule.offset_days, rule.offset_days),
        )

    def matches_bronze(self, check_id: str, entity: EntityType) -> QualityCheck:
        """Rows present on one side only (multiset difference both ways)."""
        columns = _columns(get_definition(entity).raw_columns)
        query = sql.SQL(
            "SELECT 'silver_only' AS side, s.* FROM "
            "(SELECT {columns} FROM {silver} EXCEPT ALL SELECT {columns} FROM {bronze}) AS s "
            "UNION ALL "
            "SELECT 'bronze_only' AS side, b.* FROM "
            "(SELECT {columns} FROM {bronze} EXCEPT ALL SELECT {columns} FROM {silver}) AS b"
        ).format(columns=columns, silver=self.silver(entity), bronze=self.bronze(entity))
        return self.check(check_id, entity, "silver content must be identical to bronze content", query)


def _columns(columns: list[str] | tuple[str, ...]) -> sql.Composed:
    return sql.SQL(", ").join(sql.Identifier(column) for column in columns)


def _version_rule(catalog: RuleCatalog, entity: EntityType) -> LeadDateRule:
    for rule in catalog.rules_for(entity).active_rules():
        if isinstance(rule, LeadDateRule):
            return rule
    return LeadDateRule(
        type="lead_date",
        partition_by=["prd_key"],
        order_by="prd_start_dt",
        target="prd_end_dt",
        tie_break=["prd_id"],
        open_value=DEFAULT_OPEN_END_DATE,
    )


def version_partition(catalog: RuleCatalog, entity: EntityType, rule: LeadDateRule) -> list[str]:
    """
    Silver columns that hold the values ``rule`` partitioned on.

    A partition field split by a later ``split_key`` step lives on in silver
    as the prefix column plus the remaining key, so both are used.
    """
    rules = catalog.rules_for(entity).active_rules()
    position = next((i for i, candidate in enumerate(rules) if candidate is rule), -1)
    splits = {
        candidate.field: candidate.prefix_field
        for candidate in rules[position + 1:]
        if isinstance(candidate, SplitKeyRule)
    }

    columns = []
    for field_name in rule.partition_by:
        if field_name in splits:
            columns.append(splits[field_name])
        columns.append(field_name)
    return columns


def build_checks(
    catalog: RuleCatalog,
    silver_schema: str = "silver",
    bronze_schema: str = "bronze",
    as_of: date | None = None,
) -> list[QualityCheck]:
    """
    Build the full check catalogue.

    Args:
        catalog: Rule catalog providing closed label sets and the version rule
        silver_schema: Schema of the inspected relations
        bronze_schema: Schema of the raw relations (pass-through comparison)
        as_of: Latest plausible birthdate; today in UTC when not given, the
            same date the transformations use by default

    Returns:
        Checks in a stable order, grouped by entity
    """
    f = CheckFactory(silver_schema, bronze_schema)
    as_of = as_of or datetime.now(timezone.utc).date()
    customer, product, sales = EntityType.CUSTOMER, EntityType.PRODUCT, EntityType.SALES
    demographic, location, category = (
        EntityType.CUSTOMER_DEMOGRAPHIC,
        EntityType.LOCATION,
        EntityType.PRODUCT_CATEGORY,
    )

    version_rule = _version_rule(catalog, product)

    return [
        f.not_null("CUST-01", customer, "cst_id"),
        f.unique("CUST-02", customer, "cst_id"),
        f.closed_set("CUST-03", customer, "cst_marital_status", catalog.closed_set(customer, "cst_marital_status")),
        f.closed_set("CUST-04", customer, "cst_gndr", catalog.closed_set(customer, "cst_gndr")),

        f.not_null_unique("PROD-01", product, ["prd_id"]),
        f.rows_where(
            "PROD-02", product, "prd_cost must be non-null and >= 0",
            ["prd_id", "prd_key", "prd_cost"], "prd_cost IS NULL OR prd_cost < 0",
        ),
        f.rows_where(
            "PROD-03", product, "prd_start_dt must not be after prd_end_dt",
            ["prd_id", "prd_key", "prd_start_dt", "prd_end_dt"], "prd_end_dt < prd_start_dt",
        ),
        f.closed_set("PROD-04", product, "prd_line", catalog.closed_set(product, "prd_line")),
        f.version_chain("PROD-05", version_rule, product, version_partition(catalog, product, version_rule)),

        f.rows_where(
            "SALE-01", sales, "sls_order_dt must not be after sls_ship_dt or sls_due_dt",
            ["sls_ord_num", "sls_prd_key", "sls_order_dt", "sls_ship_dt", "sls_due_dt"],
            "sls_order_dt > sls_ship_dt OR sls_order_dt > sls_due_dt",
        ),
        f.rows_where(
            "SALE-02", sales, f"sls_sales must equal sls_quantity * sls_price within {SALES_TOLERANCE}",
            ["sls_ord_num", "sls_prd_key", "sls_sales", "sls_quantity", "sls_price"],
            "sls_sales IS NULL OR sls_quantity IS NULL OR sls_price IS NULL "
            "OR abs(sls_sales - sls_quantity * sls_price) > %s::numeric",
            (SALES_TOLERANCE,),
        ),
        f.not_null_unique("SALE-03", sales, ["sls_ord_num", "sls_prd_key"]),

        f.rows_where(
            "ERPCUST-01", demographic, f"bdate must lie between {MIN_BIRTHDATE} and {as_of}",
            ["cid", "bdate"], "bdate > %s OR bdate < %s",
            (as_of, MIN_BIRTHDATE),
        ),
        f.closed_set("ERPCUST-02", demographic, "gen", catalog.closed_set(demographic, "gen")),
        f.not_null_unique("ERPCUST-03", demographic, ["cid"]),

        f.closed_set("ERPLOC-01", location, "cntry", catalog.closed_set(location, "cntry")),
        f.not_null_unique("ERPLOC-02", location, ["cid"]),

        f.not_null_unique("CAT-01", category, ["id"]),
        f.matches_bronze("CAT-02", category),
    ]
