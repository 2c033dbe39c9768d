"""
Atomic extent replacement for silver relations.

A refresh replaces the whole content of a silver relation. The delete and
all inserts run in a single transaction, so concurrent readers keep seeing
the previous extent until commit and any failure leaves it untouched.
"""

from collections.abc import Iterable, Iterator
from itertools import islice

import psycopg
from psycopg import sql

from silver_refresh.core.entities import EntityDefinition
from silver_refresh.core.errors import StorageError
from silver_refresh.core.models import SilverRecord
from silver_refresh.observability.logger import get_logger
from silver_refresh.utils.validation import (
    chunk_size_from_env,
    sanitize_sql_identifier,
    schema_from_env,
    validate_chunk_size,
)

from .connection import DatabaseConnectionPool

logger = get_logger("silver-refresh.warehouse")


def chunked(records: Iterable[SilverRecord], size: int) -> Iterator[list[SilverRecord]]:
    """Split a stream into lists of at most ``size`` items."""
    iterator = iter(records)
    while chunk := list(islice(iterator, size)):
        yield chunk


class ExtentReplacer:
    """
    Replaces silver extents with freshly transformed records.

    DELETE is used rather than TRUNCATE: TRUNCATE takes an ACCESS EXCLUSIVE
    lock and is not MVCC-safe for concurrent readers.
    """

    def __init__(self, pool: DatabaseConnectionPool, schema: str | None = None, chunk_size: int | None = None):
        """
        Initialize extent replacer.

        Args:
            pool: Database connection pool
            schema: Silver schema name (defaults to env var SILVER_SCHEMA, then "silver")
            chunk_size: Rows per executemany call (defaults to env var LOAD_CHUNK_SIZE, then 1000)
        """
        self.pool = pool
        self.schema = sanitize_sql_identifier(schema, "silver schema") if schema else schema_from_env("SILVER_SCHEMA", "silver")
        self.chunk_size = validate_chunk_size(chunk_size) if chunk_size is not None else chunk_size_from_env()

    def relation(self, definition: EntityDefinition) -> str:
        return definition.relation(self.schema)

    def build_statements(self, definition: EntityDefinition) -> tuple[sql.Composed, sql.Composed]:
        """DELETE and parameterised INSERT statements for an entity's extent."""
        target = sql.Identifier(self.schema, definition.table)
        columns = definition.silver_columns

        delete = sql.SQL("DELETE FROM {relation}").format(relation=target)
        insert = sql.SQL("INSERT INTO {relation} ({columns}) VALUES ({values})").format(
            relation=target,
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        return delete, insert

    def replace(self, definition: EntityDefinition, records: Iterable[SilverRecord]) -> int:
        """
        Replace the extent of an entity with the given records.

        ``records`` is consumed inside the transaction: an exception raised
        while producing it (parse or rule error) rolls the replacement back.

        Args:
            definition: Entity whose silver relation is replaced
            records: Cleansed records, typically a transform generator

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If the database rejects the delete or an insert
        """
        relation = self.relation(definition)
        delete, insert = self.build_statements(definition)
        columns = definition.silver_columns
        written = 0

        try:
            with self.pool.get_connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(delete)
                        removed = cur.rowcount

                        for chunk in chunked(records, self.chunk_size):
                            params = [tuple(getattr(record, column) for column in columns) for record in chunk]
                            cur.executemany(insert, params)
                            written += len(params)
        except psycopg.Error as e:
            raise StorageError(relation, f"extent replace failed: {str(e).strip()}", e.sqlstate) from e

        logger.debug(
            "Replaced silver extent",
            extra={"relation": relation, "rows_removed": removed, "rows_written": written},
        )
        return written

    def count(self, definition: EntityDefinition) -> int:
        """Current number of rows in an entity's silver relation."""
        relation = self.relation(definition)
        query = sql.SQL("SELECT count(*) AS n FROM {relation}").format(
            relation=sql.Identifier(self.schema, definition.table)
        )
        try:
            return self.pool.execute_query(query)[0]["n"]
        except psycopg.Error as e:
            raise StorageError(relation, f"count failed: {str(e).strip()}", e.sqlstate) from e
