"""
Raw (bronze) record models.

Raw records are weakly typed: every column may be null, but every column
must be present and values must be coercible to the column type. Anything
else is a malformed record.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, BeforeValidator


def _truncate_to_date(value):
    """Bronze date columns sometimes arrive as timestamps; keep the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


RawDate = Annotated[date | None, BeforeValidator(_truncate_to_date)]


class RawRecord(BaseModel):
    """Base class for bronze records: all columns required, no extras."""

    class Config:
        extra = "forbid"


class RawCustomerRecord(RawRecord):
    """Row of bronze.crm_cust_info."""

    cst_id: int | None
    cst_key: str | None
    cst_firstname: str | None
    cst_lastname: str | None
    cst_marital_status: str | None
    cst_gndr: str | None
    cst_create_date: RawDate


class RawProductRecord(RawRecord):
    """Row of bronze.crm_prd_info. ``prd_key`` embeds the category id."""

    prd_id: int | None
    prd_key: str | None
    prd_nm: str | None
    prd_cost: Decimal | None
    prd_line: str | None
    prd_start_dt: RawDate
    prd_end_dt: RawDate

    class Config:
        extra = "forbid"
        json_schema_extra = {
            "example": {
                "prd_id": 210,
                "prd_key": "CO-RF-FR-R92B-58",
                "prd_nm": "HL Road Frame - Black- 58",
                "prd_cost": None,
                "prd_line": "R ",
                "prd_start_dt": "2003-07-01",
                "prd_end_dt": None,
            }
        }


class RawSalesRecord(RawRecord):
    """Row of bronze.crm_sales_details. Dates are integers in YYYYMMDD form."""

    sls_ord_num: str | None
    sls_prd_key: str | None
    sls_cust_id: int | None
    sls_order_dt: int | None
    sls_ship_dt: int | None
    sls_due_dt: int | None
    sls_sales: Decimal | None
    sls_quantity: int | None
    sls_price: Decimal | None


class RawCustomerDemographic(RawRecord):
    """Row of bronze.erp_cust_az12."""

    cid: str | None
    bdate: RawDate
    gen: str | None


class RawLocationRecord(RawRecord):
    """Row of bronze.erp_loc_a101."""

    cid: str | None
    cntry: str | None


class RawProductCategory(RawRecord):
    """Row of bronze.erp_px_cat_g1v2."""

    id: str | None
    cat: str | None
    subcat: str | None
    maintenance: str | None
