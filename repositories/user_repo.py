"""
repositories/user_repo.py
--------------------------
Data access layer for user records.
All SQL queries related to the `users` table live here.
"""

import uuid
from typing import Optional

from psycopg2 import errors

from db.connection import get_connection, release_connection
from models.user import IDLE, User, UserUpdate, state_from_columns, state_to_columns
from utils.errors import HandleTakenError
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "platform_id, stable_id, handle, state, contact_stable_id, "
    "reply_message_id, delivery_message_id, version, created_at"
)


class UserRepository:
    """Repository for CRUD operations on the users table."""

    # ── CREATE ────────────────────────────────────────────

    def create(self, platform_id: int) -> User:
        """
        Insert a new user with a freshly generated stable ID.

        Args:
            platform_id: The Telegram user ID.

        Returns:
            The persisted User.
        """
        sql = f"""
            INSERT INTO users (platform_id, stable_id)
            VALUES (%s, %s)
            RETURNING {_COLUMNS};
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (platform_id, str(uuid.uuid4())))
                row = cur.fetchone()
            conn.commit()
            user = self._row_to_user(row)
            logger.info(f"Created user {user.stable_id} for platform id {platform_id}")
            return user
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to create user {platform_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def ensure(self, platform_id: int) -> User:
        """
        Insert a user if they don't exist, or return the existing record.
        Uses PostgreSQL's ON CONFLICT (upsert) for atomicity, so two first
        contacts racing each other still end up with one stable ID.

        Args:
            platform_id: The Telegram user ID.

        Returns:
            The existing or newly created User.
        """
        sql = f"""
            INSERT INTO users (platform_id, stable_id)
            VALUES (%s, %s)
            ON CONFLICT (platform_id) DO UPDATE SET platform_id = EXCLUDED.platform_id
            RETURNING {_COLUMNS};
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (platform_id, str(uuid.uuid4())))
                row = cur.fetchone()
            conn.commit()
            return self._row_to_user(row)
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to ensure user {platform_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get_by_platform_id(self, platform_id: int) -> Optional[User]:
        """Fetch a user by their Telegram ID."""
        return self._fetch_one(f"SELECT {_COLUMNS} FROM users WHERE platform_id = %s;", (platform_id,))

    def get_by_stable_id(self, stable_id: str) -> Optional[User]:
        """Fetch a user by exact stable ID."""
        return self._fetch_one(f"SELECT {_COLUMNS} FROM users WHERE stable_id = %s;", (stable_id,))

    def get_by_handle(self, handle: str) -> Optional[User]:
        """Fetch a user by handle, ignoring case."""
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM users WHERE LOWER(handle) = LOWER(%s);", (handle,)
        )

    # ── UPDATE ────────────────────────────────────────────

    def update(self, stable_id: str, changes: UserUpdate, expected_version: Optional[int] = None) -> bool:
        """
        Apply a partial update in a single statement.

        Args:
            stable_id: The user to update.
            changes: Fields to change. State columns always move together.
            expected_version: When given, the update only applies if the row
                still has this version (compare-and-set).

        Returns:
            True if the row was updated, False if it is missing or the version moved on.

        Raises:
            HandleTakenError: If the new handle is owned by another user.
        """
        assignments: list[str] = []
        params: list = []

        if changes.state is not None:
            state, contact, reply_to, delivery = state_to_columns(changes.state)
            assignments += [
                "state = %s",
                "contact_stable_id = %s",
                "reply_message_id = %s",
                "delivery_message_id = %s",
            ]
            params += [state, contact, reply_to, delivery]
        if changes.handle is not None:
            assignments.append("handle = %s")
            params.append(changes.handle)
        elif changes.clear_handle:
            assignments.append("handle = NULL")

        assignments += ["version = version + 1", "updated_at = NOW()"]
        sql = f"UPDATE users SET {', '.join(assignments)} WHERE stable_id = %s"
        params.append(stable_id)
        if expected_version is not None:
            sql += " AND version = %s"
            params.append(expected_version)
        sql += ";"

        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except errors.UniqueViolation:
            conn.rollback()
            logger.info(f"Handle '{changes.handle}' claimed concurrently by another user")
            raise HandleTakenError(changes.handle or "")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update user {stable_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def reset_state(self, stable_id: str, expected_version: Optional[int] = None) -> bool:
        """Put the user back to idle, clearing every composing field."""
        return self.update(stable_id, UserUpdate(state=IDLE), expected_version)

    # ── HELPERS ───────────────────────────────────────────

    def _fetch_one(self, sql: str, params: tuple) -> Optional[User]:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                return self._row_to_user(row) if row else None
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_user(row: tuple) -> User:
        """Convert a database row tuple to a User domain object."""
        return User(
            platform_id=row[0],
            stable_id=row[1],
            handle=row[2],
            state=state_from_columns(row[3], row[4], row[5], row[6]),
            version=row[7],
            created_at=row[8],
        )
