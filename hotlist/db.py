"""
Hotlist Database Connection
===========================

psycopg2 connection pooling shared by the PostgreSQL queue and entity
stores. Each `connection()` block is one transaction: committed on exit,
rolled back on any error, which is re-raised as StorageError.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, Any

import psycopg2
from psycopg2 import pool

from .data.config import DatabaseConfig

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class StorageError(Exception):
    """Queue or entity store operation failed."""
    pass


class Database:
    """Lazily created ThreadedConnectionPool with transactional checkout."""

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        db_pool: Optional[pool.ThreadedConnectionPool] = None,
    ):
        if config is None and db_pool is None:
            raise ValueError("Either a DatabaseConfig or a connection pool is required")
        self.config = config
        self._db_pool = db_pool
        self._own_pool = db_pool is None

    @property
    def db_pool(self) -> pool.ThreadedConnectionPool:
        """Lazy-initialize database connection pool."""
        if self._db_pool is None:
            try:
                self._db_pool = pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_size,
                    maxconn=self.config.pool_max_size,
                    **self.config.connection_dict
                )
            except Exception as e:
                raise StorageError(f"Failed to create connection pool: {e}") from e
            logger.info(f"DB pool created: {self.config.host}:{self.config.port}/{self.config.name}")
        return self._db_pool

    @contextmanager
    def connection(self):
        """
        Get a database connection from the pool.

        Yields:
            psycopg2 connection object

        Example:
            with database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        conn = None
        try:
            conn = self.db_pool.getconn()
            yield conn
            conn.commit()
        except StorageError:
            self._rollback(conn)
            raise
        except Exception as e:
            self._rollback(conn)
            raise StorageError(f"Database operation failed: {e}") from e
        finally:
            if conn:
                # Dropped connections are discarded instead of returned to the pool
                self.db_pool.putconn(conn, close=bool(conn.closed))

    @staticmethod
    def _rollback(conn) -> None:
        if not conn:
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed, discarding connection: {e}")

    def apply_schema(self, schema_path: Path = SCHEMA_PATH) -> None:
        """Create tables and indexes if they do not exist."""
        sql = schema_path.read_text()
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
        logger.info(f"Schema applied from {schema_path}")

    def check_health(self) -> Dict[str, Any]:
        """Non-raising connectivity probe."""
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            return {"status": "healthy"}
        except StorageError as e:
            logger.warning(f"DB health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    def close(self):
        """Clean up resources."""
        if self._own_pool and self._db_pool is not None:
            self._db_pool.closeall()
            self._db_pool = None
            logger.info("Database connection pool closed")
