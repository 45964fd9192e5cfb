# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the SQLAlchemy engine adapter and driver error translation.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from mysqlalchemy import (
    ConnectionCapability,
    ExecutionFailure,
    SQLAlchemyConnection,
    TransientConflictError,
)
from mysqlalchemy.connection import translate_error

from .conftest import FakeConnection


@pytest.fixture
def engine():
    engine = MagicMock()
    conn = engine.begin.return_value.__enter__.return_value
    conn.exec_driver_sql.return_value.returns_rows = False
    return engine


def driver_connection(engine):
    return engine.begin.return_value.__enter__.return_value


class TestSQLAlchemyConnection:
    """Test statement execution through an engine."""

    def test_rows_returned_as_mappings(self, engine):
        result = driver_connection(engine).exec_driver_sql.return_value
        result.returns_rows = True
        result.keys.return_value = ["user_id", "user_name"]
        result.mappings.return_value = [{"user_id": 1, "user_name": "alex"}]

        outcome = SQLAlchemyConnection(engine).execute("SELECT user.id AS user_id FROM user WHERE user.id = %s", (1,))

        driver_connection(engine).exec_driver_sql.assert_called_once_with(
            "SELECT user.id AS user_id FROM user WHERE user.id = %s", (1,)
        )
        assert outcome.rows == [{"user_id": 1, "user_name": "alex"}]
        assert outcome.columns == ["user_id", "user_name"]
        assert outcome.last_insert_id is None

    def test_write_reports_last_insert_id(self, engine):
        result = driver_connection(engine).exec_driver_sql.return_value
        result.lastrowid = 9
        result.rowcount = 1

        outcome = SQLAlchemyConnection(engine).execute("INSERT INTO user (name) VALUES (%s)", ["alex"])

        driver_connection(engine).exec_driver_sql.assert_called_once_with(
            "INSERT INTO user (name) VALUES (%s)", ("alex",)
        )
        assert outcome.rows == []
        assert outcome.last_insert_id == 9
        assert outcome.rowcount == 1

    def test_each_statement_in_its_own_transaction(self, engine):
        adapter = SQLAlchemyConnection(engine)
        adapter.execute("DELETE FROM user WHERE user.id = %s", (1,))
        adapter.execute("DELETE FROM user WHERE user.id = %s", (2,))
        assert engine.begin.call_count == 2

    def test_deadlock_translated(self, engine):
        driver_connection(engine).exec_driver_sql.side_effect = OperationalError(
            "UPDATE user SET name=%s", ("b",), Exception(1213, "Deadlock found when trying to get lock")
        )
        with pytest.raises(TransientConflictError) as exc_info:
            SQLAlchemyConnection(engine).execute("UPDATE user SET name=%s", ("b",))
        assert exc_info.value.code == 1213
        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_other_errors_translated(self, engine):
        driver_connection(engine).exec_driver_sql.side_effect = IntegrityError(
            "INSERT INTO user (id) VALUES (%s)", (1,), Exception(1062, "Duplicate entry '1' for key 'PRIMARY'")
        )
        with pytest.raises(ExecutionFailure) as exc_info:
            SQLAlchemyConnection(engine).execute("INSERT INTO user (id) VALUES (%s)", (1,))
        assert not isinstance(exc_info.value, TransientConflictError)
        assert exc_info.value.code == 1062
        assert str(exc_info.value) == "Duplicate entry '1' for key 'PRIMARY'"

    def test_close_disposes_engine_once(self, engine):
        adapter = SQLAlchemyConnection(engine)
        adapter.close()
        adapter.close()
        engine.dispose.assert_called_once_with()
        with pytest.raises(ExecutionFailure, match="Connection is closed"):
            adapter.execute("SELECT 1")
        engine.begin.assert_not_called()

    def test_satisfies_capability(self, engine):
        assert isinstance(SQLAlchemyConnection(engine), ConnectionCapability)
        assert isinstance(FakeConnection(), ConnectionCapability)


class TestTranslateError:
    """Test driver error mapping without an engine."""

    def test_message_without_code(self):
        error = OperationalError("SELECT 1", (), Exception("Lock wait timeout exceeded"))
        translated = translate_error(error)
        assert isinstance(translated, TransientConflictError)
        assert translated.code is None
        assert translated.orig is error.orig
