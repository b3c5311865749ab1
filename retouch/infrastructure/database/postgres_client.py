"""PostgreSQL database client for local development and self-hosted deployments.

This module provides a connection pool and helper functions for the edit,
cache and ledger tables. All uniqueness guarantees (one strength cache row per
``(edit_id, strength)``, one ledger row per ``(edit_id, sequence)``) are
enforced by constraints in ``schema.sql``, never in process.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

try:
    import psycopg2
    from psycopg2 import errors, pool
    from psycopg2.extras import RealDictCursor
except ImportError:  # pragma: no cover
    psycopg2 = None  # type: ignore
    errors = None  # type: ignore
    pool = None  # type: ignore
    RealDictCursor = None  # type: ignore

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def is_unique_violation(exc: BaseException) -> bool:
    """Check whether an exception is a PostgreSQL unique-constraint violation.

    Args:
        exc: Exception raised by a query.

    Returns:
        True for ``UniqueViolation``, False otherwise or when psycopg2 is missing.
    """
    if errors is None:
        return False
    return isinstance(exc, errors.UniqueViolation)


class PostgresClient:
    """PostgreSQL database client with connection pooling."""

    def __init__(self) -> None:
        """Initialize PostgreSQL connection pool."""
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled and psycopg2 is not None:
            try:
                self._pool = pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=int(os.getenv("POSTGRES_POOL_SIZE", "10")),
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "retouch"),
                    user=os.getenv("POSTGRES_USER", "retouch"),
                    password=os.getenv("POSTGRES_PASSWORD", "retouch_dev_password"),
                )
            except Exception as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """Get a database connection from the pool.

        The connection is committed on a clean exit and rolled back on error,
        so everything executed inside one ``with`` block is one transaction.

        Yields:
            Database connection with automatic return to pool on exit.

        Raises:
            RuntimeError: If local database is not enabled or connection fails.
        """
        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self._pool.putconn(conn)

    @contextmanager
    def get_cursor(self, dict_cursor: bool = True) -> Generator[Any, None, None]:
        """Get a database cursor inside its own transaction.

        Args:
            dict_cursor: If True, returns results as dictionaries (default: True).

        Yields:
            Database cursor.
        """
        with self.get_connection() as conn:
            cursor_factory = RealDictCursor if dict_cursor else None
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a query and return a single result.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            Single row as dictionary or None if no results.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_many(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a query and return all results.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            List of rows as dictionaries.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            results = cursor.fetchall()
            return [dict(row) for row in results]

    def execute_insert(self, query: str, params: tuple = ()) -> dict[str, Any]:
        """Execute an INSERT query and return the inserted row.

        Unique violations propagate unchanged so callers can retry.

        Args:
            query: SQL INSERT query with RETURNING clause.
            params: Query parameters.

        Returns:
            Inserted row as dictionary.

        Raises:
            psycopg2.errors.UniqueViolation: If the row collides with a unique constraint.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            if not result:
                raise RuntimeError("Insert query did not return a row")
            return dict(result)

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Execute an UPDATE or DELETE query.

        Args:
            query: SQL UPDATE or DELETE query.
            params: Query parameters.

        Returns:
            Number of rows affected.
        """
        with self.get_cursor(dict_cursor=False) as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def apply_schema(self) -> None:
        """Create tables and constraints if they do not exist yet.

        The statements in ``schema.sql`` are idempotent, so this runs on every startup.
        """
        with self.get_cursor(dict_cursor=False) as cursor:
            cursor.execute(SCHEMA_PATH.read_text(encoding="utf-8"))

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool:
            self._pool.closeall()


# Singleton instance
_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Get PostgreSQL client singleton.

    Returns:
        PostgresClient instance if enabled, None otherwise.
    """
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
