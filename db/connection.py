"""
db/connection.py
----------------
Manages the PostgreSQL connection pool shared by all relay events.
Updates are processed concurrently, so a connection must come back to the
pool clean: no open transaction, and broken connections are discarded.
"""

import psycopg2
from psycopg2 import extensions, pool
from config import DATABASE_URL, DB_POOL_MIN, DB_POOL_MAX
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.SimpleConnectionPool | None = None


def init_pool(min_conn: int = DB_POOL_MIN, max_conn: int = DB_POOL_MAX) -> None:
    """
    Initialize the database connection pool. Calling it twice is a no-op.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.SimpleConnectionPool(min_conn, max_conn, DATABASE_URL)
        logger.info(f"Database connection pool initialized ({min_conn}-{max_conn} connections).")
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


def get_connection():
    """
    Borrow a connection from the pool.

    Raises:
        RuntimeError: If the pool has not been initialized.
        psycopg2.pool.PoolError: If every connection is already borrowed.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    try:
        return _pool.getconn()
    except pool.PoolError:
        logger.warning("Database pool exhausted; raise DB_POOL_MAX if this keeps happening.")
        raise


def release_connection(conn) -> None:
    """
    Return a connection to the pool.
    Read-only callers never commit, so a pending transaction is rolled back here.
    """
    if _pool is None:
        return
    if conn.closed:
        _pool.putconn(conn, close=True)
        return
    if conn.get_transaction_status() != extensions.TRANSACTION_STATUS_IDLE:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Discarding connection that failed to roll back: {e}")
            _pool.putconn(conn, close=True)
            return
    _pool.putconn(conn)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Database connection pool closed.")
