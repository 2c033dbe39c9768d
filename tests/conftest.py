"""
Pytest configuration and fixtures for silver-refresh tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Generator

import psycopg
import pytest
from psycopg import sql
from psycopg.rows import dict_row
from testcontainers.postgres import PostgresContainer

from silver_refresh.core.entities import ENTITY_DEFINITIONS, get_definition
from silver_refresh.core.models import TransformContext
from silver_refresh.core.rules import TransformationEvaluator, load_catalog
from silver_refresh.warehouse.connection import DatabaseConnectionPool

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))

# Fixed clock for deterministic transforms
AS_OF = date(2025, 1, 15)
INGESTED_AT = datetime(2025, 1, 15, 6, 30, tzinfo=timezone.utc)


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# RULE FIXTURES
# =======================

@pytest.fixture(scope="session")
def catalog():
    """Rule catalog shipped with the package"""
    return load_catalog()


@pytest.fixture(scope="session")
def evaluator(catalog) -> TransformationEvaluator:
    """Evaluator over the packaged catalog"""
    return TransformationEvaluator(catalog)


@pytest.fixture(scope="session")
def transform_context() -> TransformContext:
    """Transform context with a fixed clock"""
    return TransformContext(as_of=AS_OF, ingested_at=INGESTED_AT)


# =======================
# RAW ROW FACTORIES
# =======================

def customer_row(**overrides) -> dict:
    row = {
        "cst_id": 1,
        "cst_key": "AW00000001",
        "cst_firstname": "Jon",
        "cst_lastname": "Yang",
        "cst_marital_status": "M",
        "cst_gndr": "M",
        "cst_create_date": date(2024, 1, 1),
    }
    row.update(overrides)
    return row


def product_row(**overrides) -> dict:
    row = {
        "prd_id": 210,
        "prd_key": "CO-RF-FR-R92B-58",
        "prd_nm": "HL Road Frame - Black- 58",
        "prd_cost": None,
        "prd_line": "R ",
        "prd_start_dt": date(2003, 7, 1),
        "prd_end_dt": None,
    }
    row.update(overrides)
    return row


def sales_row(**overrides) -> dict:
    row = {
        "sls_ord_num": "SO43697",
        "sls_prd_key": "BK-R93R-62",
        "sls_cust_id": 21768,
        "sls_order_dt": 20101229,
        "sls_ship_dt": 20110105,
        "sls_due_dt": 20110110,
        "sls_sales": 3578,
        "sls_quantity": 1,
        "sls_price": 3578,
    }
    row.update(overrides)
    return row


def demographic_row(**overrides) -> dict:
    row = {"cid": "NASAW00011000", "bdate": date(1971, 10, 6), "gen": "Male"}
    row.update(overrides)
    return row


def location_row(**overrides) -> dict:
    row = {"cid": "AW-00011000", "cntry": "Australia"}
    row.update(overrides)
    return row


def category_row(**overrides) -> dict:
    row = {"id": "AC_BR", "cat": "Accessories", "subcat": "Bike Racks", "maintenance": "Yes"}
    row.update(overrides)
    return row


RAW_FACTORIES: dict[str, Callable[..., dict]] = {
    "customer": customer_row,
    "product": product_row,
    "sales": sales_row,
    "customer_demographic": demographic_row,
    "location": location_row,
    "product_category": category_row,
}


@pytest.fixture(scope="session")
def raw_rows() -> dict[str, Callable[..., dict]]:
    """Factories building one valid raw row per entity type"""
    return RAW_FACTORIES


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with bronze and silver schemas
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_pipeline",
        password="test_password",
        dbname="test_datawarehouse"
    ) as postgres:
        init_sql_path = os.path.join(PROJECT_ROOT, "docker", "init-db.sql")

        with open(init_sql_path, 'r') as f:
            init_sql = f.read()

        with psycopg.connect(postgres.get_connection_url(driver=None)) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Connection pool against the test container

    Yields:
        Open DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_datawarehouse",
        user="test_pipeline",
        password="test_password",
    )
    pool.open()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a database connection for a single test

    Yields:
        psycopg Connection object (autocommit)
    """
    conn_url = postgres_container.get_connection_url(driver=None)
    with psycopg.connect(conn_url, autocommit=True) as conn:
        yield conn


@pytest.fixture(scope="function")
def clean_db(db_connection) -> Generator[psycopg.Connection, None, None]:
    """
    Provide empty bronze and silver relations

    Yields:
        psycopg Connection object with clean database
    """
    with db_connection.cursor() as cur:
        for definition in ENTITY_DEFINITIONS.values():
            for schema in ("bronze", "silver"):
                cur.execute(sql.SQL("DELETE FROM {}").format(sql.Identifier(schema, definition.table)))

    yield db_connection


def _insert_rows(conn: psycopg.Connection, schema: str, entity: str, rows: list[dict]) -> None:
    """Insert raw dictionaries into one relation."""
    if not rows:
        return
    definition = get_definition(entity)
    columns = list(rows[0])
    query = sql.SQL("INSERT INTO {relation} ({columns}) VALUES ({values})").format(
        relation=sql.Identifier(schema, definition.table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
    )
    with conn.cursor() as cur:
        cur.executemany(query, [tuple(row[c] for c in columns) for row in rows])


def _fetch_rows(conn: psycopg.Connection, schema: str, entity: str, order_by: str) -> list[dict]:
    """Read back a relation as dictionaries."""
    definition = get_definition(entity)
    query = sql.SQL("SELECT * FROM {relation} ORDER BY {order}").format(
        relation=sql.Identifier(schema, definition.table),
        order=sql.SQL(order_by),
    )
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(query)
        return cur.fetchall()


@pytest.fixture
def insert_rows() -> Callable[..., None]:
    """insert_rows(conn, schema, entity, rows)"""
    return _insert_rows


@pytest.fixture
def fetch_rows() -> Callable[..., list[dict]]:
    """fetch_rows(conn, schema, entity, order_by)"""
    return _fetch_rows
