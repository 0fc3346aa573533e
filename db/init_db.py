"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Users table: one row per Telegram account plus its conversation state
CREATE TABLE IF NOT EXISTS users (
    id                  SERIAL PRIMARY KEY,
    platform_id         BIGINT UNIQUE NOT NULL,
    stable_id           VARCHAR(36) UNIQUE NOT NULL,
    handle              VARCHAR(20),
    state               VARCHAR(20) NOT NULL DEFAULT 'idle'
                        CHECK (state IN ('idle', 'composing', 'registering_handle')),
    contact_stable_id   VARCHAR(36),
    reply_message_id    BIGINT NOT NULL DEFAULT 0,
    delivery_message_id BIGINT NOT NULL DEFAULT 0,
    version             INT NOT NULL DEFAULT 0,
    created_at          TIMESTAMPTZ DEFAULT NOW(),
    updated_at          TIMESTAMPTZ DEFAULT NOW(),
    -- Composing fields only exist while composing
    CONSTRAINT users_composing_fields CHECK (
        state = 'composing'
        OR (contact_stable_id IS NULL AND reply_message_id = 0 AND delivery_message_id = 0)
    )
);

-- Handles are stored lowercase; the index keeps them unique regardless
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_handle ON users (LOWER(handle)) WHERE handle IS NOT NULL;
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
