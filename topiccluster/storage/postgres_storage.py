"""
PostgreSQL Storage Backend

Keeps every record as a JSONB row keyed by its path. Conditional writes are
single statements (INSERT .. ON CONFLICT DO NOTHING, UPDATE/DELETE guarded by
JSONB equality), so the database provides the atomicity.
"""
from typing import List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2 import sql
import structlog

from topiccluster.storage.backend import Record, StorageBackend, StorageError


logger = structlog.get_logger(__name__)


class PostgresStorage(StorageBackend):
    """JSONB key/value record store."""

    def __init__(self, database_url: str, table: str = 'pipeline_records'):
        self.database_url = database_url
        self.table = sql.Identifier(table)
        self.ensure_schema()

    def ensure_schema(self):
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                path TEXT PRIMARY KEY,
                record JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            None,
        )

    def _execute(self, query: str, params: Sequence, fetch: bool = False):
        """Run one statement in its own transaction; returns (rowcount, rows)."""
        conn = psycopg2.connect(self.database_url)
        cursor = conn.cursor()

        try:
            cursor.execute(sql.SQL(query).format(table=self.table), params)
            rows = cursor.fetchall() if fetch else []
            rowcount = cursor.rowcount
            conn.commit()
            return rowcount, rows

        except psycopg2.Error as e:
            logger.error("postgres_storage_error", error=str(e))
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            cursor.close()
            conn.close()

    def write(self, path: str, record: Record) -> None:
        self._execute(
            """
            INSERT INTO {table} (path, record, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (path)
            DO UPDATE SET record = EXCLUDED.record, updated_at = NOW()
            """,
            (path, psycopg2.extras.Json(record)),
        )

    def read(self, path: str) -> Optional[Record]:
        _, rows = self._execute(
            "SELECT record FROM {table} WHERE path = %s",
            (path,),
            fetch=True,
        )
        return rows[0][0] if rows else None

    def list(self, prefix: str) -> List[str]:
        _, rows = self._execute(
            "SELECT path FROM {table} WHERE left(path, length(%s)) = %s ORDER BY path",
            (prefix, prefix),
            fetch=True,
        )
        return [row[0] for row in rows]

    def delete(self, path: str) -> None:
        self._execute("DELETE FROM {table} WHERE path = %s", (path,))

    def create(self, path: str, record: Record) -> bool:
        rowcount, _ = self._execute(
            """
            INSERT INTO {table} (path, record)
            VALUES (%s, %s)
            ON CONFLICT (path) DO NOTHING
            """,
            (path, psycopg2.extras.Json(record)),
        )
        return rowcount == 1

    def compare_and_swap(self, path: str, expected: Record, record: Record) -> bool:
        rowcount, _ = self._execute(
            """
            UPDATE {table}
            SET record = %s, updated_at = NOW()
            WHERE path = %s AND record = %s::jsonb
            """,
            (psycopg2.extras.Json(record), path, psycopg2.extras.Json(expected)),
        )
        return rowcount == 1

    def compare_and_delete(self, path: str, expected: Record) -> bool:
        rowcount, _ = self._execute(
            "DELETE FROM {table} WHERE path = %s AND record = %s::jsonb",
            (path, psycopg2.extras.Json(expected)),
        )
        return rowcount == 1
