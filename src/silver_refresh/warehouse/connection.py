"""
Warehouse connections.

One psycopg3 pool per process serves the bronze reader, the silver
replacer and the quality suite. Connection settings come from keyword
arguments first and DB_* environment variables second.
"""
import os
import time
from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from pydantic import BaseModel, Field

APPLICATION_NAME = "silver-refresh"


class ConnectionSettings(BaseModel):
    """Where and as whom to connect."""

    host: str = "localhost"
    port: int = Field(default=5432, gt=0, lt=65536)
    database: str = "datawarehouse"
    user: str = "pipeline"
    password: str
    connect_timeout: float = 30.0
    application_name: str = APPLICATION_NAME

    @classmethod
    def resolve(cls, **overrides) -> "ConnectionSettings":
        """
        Merge explicit values over DB_* environment variables.

        None means "not given" so CLI flags that were left out fall through
        to the environment.

        Raises:
            ValueError: If no password is available
        """
        env = {
            "host": os.getenv("DB_HOST"),
            "port": os.getenv("DB_PORT"),
            "database": os.getenv("DB_NAME"),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
        }
        values = {k: v for k, v in env.items() if v}
        values.update({k: v for k, v in overrides.items() if v is not None})

        if not values.get("password"):
            raise ValueError(
                "Database password must be provided. "
                "Set DB_PASSWORD or pass --db-password."
            )
        return cls(**values)

    def to_conninfo(self) -> str:
        return make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
            application_name=self.application_name,
            connect_timeout=int(self.connect_timeout),
        )


class DatabaseConnectionPool:
    """
    Pool of dictionary-row connections to the warehouse.

    Borrowed connections commit on a clean exit and roll back on error
    (psycopg_pool semantics). Usable as a context manager that opens and
    closes the pool.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 30.0,
    ) -> None:
        self.settings = ConnectionSettings.resolve(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            connect_timeout=timeout,
        )
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: ConnectionPool | None = None

    @property
    def host(self) -> str:
        return self.settings.host

    @property
    def port(self) -> int:
        return self.settings.port

    @property
    def conninfo(self) -> str:
        return self.settings.to_conninfo()

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, waiting for ``min_size`` connections.

        The database may still be starting (containers, failover), so opening
        is attempted ``max_retries`` times.

        Raises:
            OperationalError: If the pool cannot be filled after all attempts
        """
        if self._pool is not None:
            return

        last_error: Exception | None = None
        for attempt in range(1, max_retries + 1):
            pool = ConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},
                name=self.settings.application_name,
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
            except (OperationalError, TimeoutError) as e:
                pool.close()
                last_error = e
                if attempt < max_retries:
                    time.sleep(retry_delay)
                continue
            self._pool = pool
            return

        raise OperationalError(
            f"Could not reach {self.host}:{self.port} after {max_retries} attempts: {last_error}"
        ) from last_error

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """
        Borrow a connection for the duration of the block.

        Raises:
            RuntimeError: If the pool has not been opened
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    def execute_query(self, query, params: tuple | dict | None = None) -> list[dict]:
        """Run a read query on a borrowed connection and fetch every row."""
        with self.get_connection() as conn, conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def __enter__(self) -> "DatabaseConnectionPool":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
