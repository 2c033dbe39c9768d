"""
Bronze snapshot reader.

Streams the rows of a raw relation through a server-side cursor so that
large bronze tables are never materialised in client memory.
"""

from collections.abc import Iterator
from typing import Any

import psycopg
from psycopg import sql

from silver_refresh.core.entities import EntityDefinition
from silver_refresh.core.errors import StorageError
from silver_refresh.observability.logger import get_logger
from silver_refresh.utils.validation import sanitize_sql_identifier, schema_from_env

from .connection import DatabaseConnectionPool

logger = get_logger("silver-refresh.warehouse")


class BronzeSnapshotReader:
    """
    Reads the current content of bronze relations.

    Rows come back as dictionaries keyed by the raw model's column names,
    ordered by the entity's key columns.
    """

    def __init__(self, pool: DatabaseConnectionPool, schema: str | None = None, fetch_size: int = 2000):
        """
        Initialize snapshot reader.

        Args:
            pool: Database connection pool
            schema: Bronze schema name (defaults to env var BRONZE_SCHEMA, then "bronze")
            fetch_size: Rows fetched per server round-trip
        """
        self.pool = pool
        self.schema = sanitize_sql_identifier(schema, "bronze schema") if schema else schema_from_env("BRONZE_SCHEMA", "bronze")
        self.fetch_size = fetch_size

    def relation(self, definition: EntityDefinition) -> str:
        return definition.relation(self.schema)

    def build_query(self, definition: EntityDefinition) -> sql.Composed:
        return sql.SQL("SELECT {columns} FROM {relation} ORDER BY {keys}").format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in definition.raw_columns),
            relation=sql.Identifier(self.schema, definition.table),
            keys=sql.SQL(", ").join(sql.Identifier(column) for column in definition.key_columns),
        )

    def read(self, definition: EntityDefinition) -> Iterator[dict[str, Any]]:
        """
        Stream the rows of an entity's raw relation.

        The generator holds a pooled connection and an open read transaction
        until it is exhausted or closed.

        Args:
            definition: Entity to read

        Yields:
            Raw rows as dictionaries

        Raises:
            StorageError: If the relation cannot be read
        """
        relation = self.relation(definition)
        query = self.build_query(definition)
        rows_read = 0

        try:
            with self.pool.get_connection() as conn:
                with conn.cursor(name=f"snapshot_{definition.table}") as cur:
                    cur.itersize = self.fetch_size
                    cur.execute(query)
                    for row in cur:
                        rows_read += 1
                        yield row
        except psycopg.Error as e:
            raise StorageError(relation, f"snapshot read failed: {str(e).strip()}", e.sqlstate) from e

        logger.debug("Read bronze snapshot", extra={"relation": relation, "rows_read": rows_read})
