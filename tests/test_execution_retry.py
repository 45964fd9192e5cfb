# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for transient-conflict detection and the retrying execution wrapper.
"""

from __future__ import annotations

import logging
from unittest.mock import call, patch

import pytest

from mysqlalchemy import (
    CompiledStatement,
    ExecutionFailure,
    ExecutionResult,
    ExecutionWrapper,
    MapperOptions,
    TransientConflictError,
)
from mysqlalchemy.exceptions import is_transient_conflict

STATEMENT = CompiledStatement(text="UPDATE user SET name=%s WHERE user.id = %s", parameters=("b", 5))


def deadlock() -> TransientConflictError:
    return TransientConflictError("Deadlock found when trying to get lock", code=1213)


class TestTransientDetection:
    """Test classification of errors as transient conflicts."""

    @pytest.mark.parametrize("error, expected", [
        (TransientConflictError("anything"), True),
        (ExecutionFailure("Lock wait timeout exceeded", code=1205), True),
        (ExecutionFailure("opaque", code=1213), True),
        (ExecutionFailure("Duplicate entry '1' for key 'PRIMARY'", code=1062), False),
        (RuntimeError("Deadlock found when trying to get lock; try restarting transaction"), True),
        (ValueError("boom"), False),
    ])
    def test_classification(self, error, expected):
        assert is_transient_conflict(error) is expected


class TestExecutionWrapper:
    """Test retry behaviour around the connection capability."""

    def test_success_first_try(self, connection, options):
        connection.queue(ExecutionResult(rowcount=1))
        result = ExecutionWrapper(connection, options).execute(STATEMENT)
        assert result.rowcount == 1
        assert connection.calls == [(STATEMENT.text, STATEMENT.parameters)]

    def test_retries_until_success(self, connection, options):
        connection.queue(deadlock(), deadlock(), ExecutionResult(rowcount=1))
        result = ExecutionWrapper(connection, options).execute(STATEMENT)
        assert result.rowcount == 1
        assert len(connection.calls) == 3
        assert all(recorded == (STATEMENT.text, STATEMENT.parameters) for recorded in connection.calls)

    def test_gives_up_after_retry_cap(self, connection, options, caplog):
        errors = [deadlock() for _ in range(5)]
        connection.queue(*errors)
        with caplog.at_level(logging.WARNING, logger="mysqlalchemy.mysql_session"):
            with pytest.raises(TransientConflictError) as exc_info:
                ExecutionWrapper(connection, options).execute(STATEMENT)
        assert exc_info.value is errors[3]
        assert len(connection.calls) == 4
        assert "persisted after 4 attempts" in caplog.text

    def test_non_transient_error_not_retried(self, connection, options):
        failure = ExecutionFailure("Duplicate entry", code=1062)
        connection.queue(failure, ExecutionResult())
        with pytest.raises(ExecutionFailure) as exc_info:
            ExecutionWrapper(connection, options).execute(STATEMENT)
        assert exc_info.value is failure
        assert len(connection.calls) == 1

    def test_fewer_retries_configured(self, connection):
        connection.queue(deadlock(), deadlock(), deadlock())
        wrapper = ExecutionWrapper(connection, MapperOptions(max_retries=1, retry_backoff_s=0.0))
        assert wrapper.max_attempts == 2
        with pytest.raises(TransientConflictError):
            wrapper.execute(STATEMENT)
        assert len(connection.calls) == 2

    def test_backoff_grows_to_cap(self, connection):
        connection.queue(*[deadlock() for _ in range(4)])
        options = MapperOptions(retry_backoff_s=0.05, retry_backoff_max_s=0.08)
        with patch("mysqlalchemy.mysql_session.time.sleep") as sleep:
            with pytest.raises(TransientConflictError):
                ExecutionWrapper(connection, options).execute(STATEMENT)
        assert sleep.call_args_list == [call(0.05), call(0.08), call(0.08)]

    def test_zero_backoff_never_sleeps(self, connection, options):
        connection.queue(deadlock(), ExecutionResult())
        with patch("mysqlalchemy.mysql_session.time.sleep") as sleep:
            ExecutionWrapper(connection, options).execute(STATEMENT)
        sleep.assert_not_called()

    def test_retry_cap_is_bounded(self):
        with pytest.raises(ValueError):
            MapperOptions(max_retries=10)


class TestMapperOptions:
    """Test option validation."""

    def test_defaults(self):
        options = MapperOptions()
        assert (options.default_limit, options.max_limit, options.max_retries) == (50, 200, 3)

    def test_default_limit_within_max(self):
        with pytest.raises(ValueError):
            MapperOptions(default_limit=300)

    def test_frozen(self):
        options = MapperOptions()
        with pytest.raises(ValueError):
            options.max_limit = 10

