"""
Integration tests for bronze snapshot reads and silver extent replacement.

Runs against PostgreSQL using testcontainers.
"""

from datetime import date

import pytest

from silver_refresh.core.entities import get_definition
from silver_refresh.core.errors import RuleEvaluationError, StorageError
from silver_refresh.warehouse.replace import ExtentReplacer
from silver_refresh.warehouse.snapshot import BronzeSnapshotReader

CUSTOMER = get_definition("customer")


@pytest.fixture
def customers(evaluator, transform_context, raw_rows):
    """Build cleansed customer records"""
    def _build(*ids):
        rows = [raw_rows["customer"](cst_id=i, cst_key=f"AW{i:08d}") for i in ids]
        return list(evaluator.transform("customer", rows, transform_context))
    return _build


def failing_stream(records, error):
    yield from records
    raise error


@pytest.mark.integration
class TestBronzeSnapshotReader:
    """Tests for reading raw relations"""

    def test_rows_ordered_by_key(self, db_pool, clean_db, insert_rows, raw_rows):
        """Test that rows come back as dictionaries ordered by key"""
        insert_rows(clean_db, "bronze", "customer", [
            raw_rows["customer"](cst_id=3),
            raw_rows["customer"](cst_id=1),
            raw_rows["customer"](cst_id=2),
        ])
        reader = BronzeSnapshotReader(db_pool, schema="bronze", fetch_size=2)

        rows = list(reader.read(CUSTOMER))

        assert [row["cst_id"] for row in rows] == [1, 2, 3]
        assert set(rows[0]) == set(CUSTOMER.raw_columns)
        assert rows[0]["cst_create_date"] == date(2024, 1, 1)

    def test_empty_relation(self, db_pool, clean_db):
        """Test that an empty relation yields nothing"""
        assert list(BronzeSnapshotReader(db_pool, schema="bronze").read(CUSTOMER)) == []

    def test_missing_relation(self, db_pool):
        """Test that an unreadable relation raises StorageError"""
        reader = BronzeSnapshotReader(db_pool, schema="no_such_schema")
        with pytest.raises(StorageError) as exc_info:
            list(reader.read(CUSTOMER))
        assert exc_info.value.relation == "no_such_schema.crm_cust_info"


@pytest.mark.integration
class TestExtentReplacer:
    """Tests for atomic extent replacement"""

    def test_replace(self, db_pool, clean_db, fetch_rows, customers):
        """Test that the extent holds exactly the new records"""
        replacer = ExtentReplacer(db_pool, schema="silver", chunk_size=2)

        assert replacer.replace(CUSTOMER, customers(1, 2, 3, 4, 5)) == 5
        assert replacer.replace(CUSTOMER, customers(2, 9)) == 2

        rows = fetch_rows(clean_db, "silver", "customer", "cst_id")
        assert [row["cst_id"] for row in rows] == [2, 9]
        assert replacer.count(CUSTOMER) == 2

    def test_replace_with_nothing(self, db_pool, clean_db, customers):
        """Test that an empty stream empties the extent"""
        replacer = ExtentReplacer(db_pool, schema="silver")
        replacer.replace(CUSTOMER, customers(1))

        assert replacer.replace(CUSTOMER, iter([])) == 0
        assert replacer.count(CUSTOMER) == 0

    def test_transform_error_rolls_back(self, db_pool, clean_db, fetch_rows, customers):
        """Test that an error while producing records keeps the previous extent"""
        replacer = ExtentReplacer(db_pool, schema="silver", chunk_size=1)
        replacer.replace(CUSTOMER, customers(1, 2))

        error = RuleEvaluationError("customer", "customer_gender", "boom")
        with pytest.raises(RuleEvaluationError):
            replacer.replace(CUSTOMER, failing_stream(customers(7, 8, 9), error))

        rows = fetch_rows(clean_db, "silver", "customer", "cst_id")
        assert [row["cst_id"] for row in rows] == [1, 2]

    def test_duplicate_key_rolls_back(self, db_pool, clean_db, fetch_rows, customers):
        """Test that a constraint violation is a StorageError and changes nothing"""
        replacer = ExtentReplacer(db_pool, schema="silver")
        replacer.replace(CUSTOMER, customers(1, 2))

        with pytest.raises(StorageError) as exc_info:
            replacer.replace(CUSTOMER, customers(5) + customers(5))

        assert exc_info.value.sqlstate == "23505"
        assert exc_info.value.relation == "silver.crm_cust_info"
        rows = fetch_rows(clean_db, "silver", "customer", "cst_id")
        assert [row["cst_id"] for row in rows] == [1, 2]

    def test_missing_relation(self, db_pool, customers):
        """Test that a missing target relation is a StorageError"""
        replacer = ExtentReplacer(db_pool, schema="no_such_schema")
        with pytest.raises(StorageError):
            replacer.replace(CUSTOMER, customers(1))

    def test_columns_round_trip(self, db_pool, clean_db, fetch_rows, insert_rows, raw_rows, evaluator,
                                transform_context):
        """Test that every cleansed column lands in its silver column"""
        insert_rows(clean_db, "bronze", "product", [raw_rows["product"](prd_cost=None, prd_line="M")])
        reader = BronzeSnapshotReader(db_pool, schema="bronze")
        replacer = ExtentReplacer(db_pool, schema="silver")
        product = get_definition("product")

        records = evaluator.transform("product", reader.read(product), transform_context)
        assert replacer.replace(product, records) == 1

        row = fetch_rows(clean_db, "silver", "product", "prd_id")[0]
        assert row["cat_id"] == "CO_RF"
        assert row["prd_key"] == "FR-R92B-58"
        assert row["prd_cost"] == 0
        assert row["prd_line"] == "Mountain"
        assert row["prd_start_dt"] == date(2003, 7, 1)
        assert row["prd_end_dt"] == date(9999, 12, 31)
        assert row["ingested_at"] == transform_context.ingested_at
