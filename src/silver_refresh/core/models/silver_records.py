"""
Cleansed (silver) record models.

Each model mirrors one silver relation. ``ingested_at`` is stamped at load
time and is the only column that differs between two refreshes of the same
bronze snapshot.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel


class SilverRecord(BaseModel):
    """Base class for cleansed records."""

    ingested_at: datetime

    class Config:
        extra = "forbid"

    def content(self) -> dict:
        """Column values without the load timestamp."""
        return self.model_dump(exclude={"ingested_at"})


class CustomerRecord(SilverRecord):
    """
    Deduplicated customer master data.

    Attributes:
        cst_id: Customer id, unique and non-null
        cst_marital_status: One of Single, Married, n/a
        cst_gndr: One of Female, Male, n/a
    """

    cst_id: int
    cst_key: str | None
    cst_firstname: str | None
    cst_lastname: str | None
    cst_marital_status: str
    cst_gndr: str
    cst_create_date: date | None


class ProductRecord(SilverRecord):
    """
    Versioned product data.

    Attributes:
        cat_id: Category id extracted from the composite raw key
        prd_key: Product key without the category prefix
        prd_end_dt: Day before the next version starts, or the open sentinel
    """

    prd_id: int | None
    cat_id: str | None
    prd_key: str | None
    prd_nm: str | None
    prd_cost: Decimal
    prd_line: str
    prd_start_dt: date | None
    prd_end_dt: date | None


class SalesRecord(SilverRecord):
    """Sales order lines with parsed dates and reconciled amounts."""

    sls_ord_num: str | None
    sls_prd_key: str | None
    sls_cust_id: int | None
    sls_order_dt: date | None
    sls_ship_dt: date | None
    sls_due_dt: date | None
    sls_sales: Decimal | None
    sls_quantity: int | None
    sls_price: Decimal | None


class CustomerDemographic(SilverRecord):
    """ERP customer attributes."""

    cid: str | None
    bdate: date | None
    gen: str


class LocationRecord(SilverRecord):
    """ERP customer location."""

    cid: str | None
    cntry: str


class ProductCategory(SilverRecord):
    """ERP product category master data, copied as-is."""

    id: str | None
    cat: str | None
    subcat: str | None
    maintenance: str | None
