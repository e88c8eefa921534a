"""PostgreSQL client used when USE_LOCAL_DB=1.

Projects are stored as one JSONB document per row, so only a handful of
query helpers are needed on top of the pool.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

from psycopg2 import pool
from psycopg2.extras import RealDictCursor


class PostgresClient:
    """Thin pooled wrapper; commits on success, rolls back on any error."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled:
            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=int(os.getenv("POSTGRES_POOL_SIZE", "10")),
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "ai_pipeline"),
                    user=os.getenv("POSTGRES_USER", "ai_pipeline"),
                    password=os.getenv("POSTGRES_PASSWORD", "ai_pipeline_dev_password"),
                )
            except Exception as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def get_cursor(self, dict_cursor: bool = True) -> Generator[Any, None, None]:
        """Yield a cursor inside a transaction.

        Raises:
            RuntimeError: If the local database is not enabled.
        """
        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = self._pool.getconn()
        try:
            cursor = conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None)
            try:
                yield cursor
            finally:
                cursor.close()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def execute_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def execute_many(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run an INSERT/UPDATE/DELETE and return the affected row count."""
        with self.get_cursor(dict_cursor=False) as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()


_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Return the pooled client, or None when the local database is off."""
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
