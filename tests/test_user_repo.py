"""Tests for UserRepository SQL and row mapping, against a mocked psycopg2 connection."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from psycopg2 import errors

from models.user import IDLE, ComposingOutbound, UserUpdate
from repositories import user_repo as user_repo_module
from repositories.user_repo import UserRepository
from utils.errors import HandleTakenError

CREATED = datetime(2026, 1, 1, tzinfo=timezone.utc)


def row(state: str = "idle", contact=None, reply_to: int = 0, delivery: int = 0, handle=None, version: int = 3) -> tuple:
    return (42, "stable-1", handle, state, contact, reply_to, delivery, version, CREATED)


@pytest.fixture
def cursor() -> MagicMock:
    cur = MagicMock()
    cur.rowcount = 1
    return cur


@pytest.fixture
def conn(cursor: MagicMock, monkeypatch) -> MagicMock:
    connection = MagicMock()
    connection.cursor.return_value.__enter__.return_value = cursor
    monkeypatch.setattr(user_repo_module, "get_connection", lambda: connection)
    monkeypatch.setattr(user_repo_module, "release_connection", lambda c: None)
    return connection


class TestRowMapping:
    def test_idle_row(self) -> None:
        user = UserRepository._row_to_user(row(handle="alice"))
        assert user.platform_id == 42
        assert user.stable_id == "stable-1"
        assert user.handle == "alice"
        assert user.state == IDLE
        assert user.version == 3
        assert user.created_at == CREATED

    def test_composing_row(self) -> None:
        user = UserRepository._row_to_user(row("composing", "stable-2", 10, 11))
        assert user.state == ComposingOutbound("stable-2", 10, 11)

    def test_composing_row_without_contact_reads_as_idle(self) -> None:
        assert UserRepository._row_to_user(row("composing")).state == IDLE


class TestReads:
    def test_get_by_handle_is_case_insensitive_sql(self, conn, cursor) -> None:
        cursor.fetchone.return_value = row(handle="alice")

        user = UserRepository().get_by_handle("Alice")

        sql, params = cursor.execute.call_args.args
        assert "LOWER(handle) = LOWER(%s)" in sql
        assert params == ("Alice",)
        assert user.handle == "alice"

    def test_missing_user(self, conn, cursor) -> None:
        cursor.fetchone.return_value = None
        assert UserRepository().get_by_stable_id("nope") is None

    def test_ensure_upserts_on_platform_id(self, conn, cursor) -> None:
        cursor.fetchone.return_value = row()

        user = UserRepository().ensure(42)

        sql, params = cursor.execute.call_args.args
        assert "ON CONFLICT (platform_id)" in sql
        assert params[0] == 42
        assert user.stable_id == "stable-1"
        conn.commit.assert_called_once()


class TestUpdate:
    def test_state_columns_move_together(self, conn, cursor) -> None:
        UserRepository().update("stable-1", UserUpdate(state=ComposingOutbound("stable-2", 5, 6)), expected_version=3)

        sql, params = cursor.execute.call_args.args
        assert "state = %s" in sql
        assert "contact_stable_id = %s" in sql
        assert "version = version + 1" in sql
        assert sql.rstrip(";").endswith("AND version = %s")
        assert params == ["composing", "stable-2", 5, 6, "stable-1", 3]

    def test_idle_clears_composing_columns(self, conn, cursor) -> None:
        UserRepository().reset_state("stable-1")

        sql, params = cursor.execute.call_args.args
        assert "AND version" not in sql
        assert params == ["idle", None, 0, 0, "stable-1"]

    def test_clear_handle(self, conn, cursor) -> None:
        UserRepository().update("stable-1", UserUpdate(state=IDLE, clear_handle=True))

        sql, _ = cursor.execute.call_args.args
        assert "handle = NULL" in sql

    def test_lost_compare_and_set(self, conn, cursor) -> None:
        cursor.rowcount = 0
        assert UserRepository().update("stable-1", UserUpdate(state=IDLE), expected_version=1) is False

    def test_unique_violation_maps_to_handle_taken(self, conn, cursor) -> None:
        cursor.execute.side_effect = errors.UniqueViolation("duplicate key")

        with pytest.raises(HandleTakenError) as exc_info:
            UserRepository().update("stable-1", UserUpdate(state=IDLE, handle="bob"))

        assert exc_info.value.handle == "bob"
        conn.rollback.assert_called_once()

    def test_other_failures_roll_back_and_propagate(self, conn, cursor) -> None:
        cursor.execute.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            UserRepository().update("stable-1", UserUpdate(state=IDLE))

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
