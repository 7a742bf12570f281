import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2 import pool

logger = logging.getLogger(__name__)


class StorageService:
    """PostgreSQL access through a thread-safe connection pool"""

    def __init__(self, db_url: Optional[str], min_connections: int = 1, max_connections: int = 10):
        self.db_url = db_url
        self.pool = None
        self._connect_db(min_connections, max_connections)

    def _connect_db(self, min_connections: int, max_connections: int):
        """Establishes the connection pool to the PostgreSQL database."""
        if not self.db_url:
            logger.error("DATABASE_URL is not set. Database operations will fail.")
            return

        try:
            self.pool = pool.ThreadedConnectionPool(min_connections, max_connections, self.db_url)
            logger.info("Database connection pool established", extra={
                'min_connections': min_connections,
                'max_connections': max_connections
            })
        except psycopg2.Error as e:
            logger.error(f"Error connecting to database: {e}", exc_info=True)
            self.pool = None

    @property
    def is_available(self) -> bool:
        return self.pool is not None

    @contextmanager
    def transaction(self) -> Iterator["psycopg2.extensions.cursor"]:
        """
        Yield a cursor bound to a pooled connection.

        Commits when the block exits normally and rolls back when it raises.
        The exception is re-raised so callers see the original failure.
        """
        if not self.pool:
            raise RuntimeError("Database connection pool is not available")

        conn = self.pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def close(self):
        if self.pool:
            self.pool.closeall()
            self.pool = None
