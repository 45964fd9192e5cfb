# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for MySQLAlchemy.
"""

from __future__ import annotations

from typing import Any, Optional

from .constants import NotFoundConstants, RetryConstants


class MySQLAlchemyError(Exception):
    """Base class for all MySQLAlchemy errors."""


class ConfigurationError(MySQLAlchemyError):
    """Invalid model or relation setup. Raised at setup time, never at query time."""


class NotFoundError(MySQLAlchemyError):
    """A single-result lookup returned zero rows."""

    def __init__(self, message: str, query: Any = None):
        super().__init__(message)
        self.query = query
        self.status = NotFoundConstants.STATUS
        self.code = NotFoundConstants.STATUS


class ExecutionFailure(MySQLAlchemyError):
    """
    Storage-layer error reported by the connection capability.

    :param message: Error message reported by the driver
    :param code: MySQL error number when known
    :param orig: Original driver exception
    """

    def __init__(self, message: str, code: Optional[int] = None, orig: Optional[BaseException] = None):
        super().__init__(message)
        self.code = code
        self.orig = orig


class TransientConflictError(ExecutionFailure):
    """Deadlock or lock-wait signal expected to succeed when retried."""


def is_transient_conflict(error: BaseException) -> bool:
    """
    Decide whether an error is a transient conflict worth retrying.

    Connection capabilities that do not raise :class:`TransientConflictError`
    are classified by MySQL error number or by message.
    """
    if isinstance(error, TransientConflictError):
        return True
    code = getattr(error, "code", None)
    if isinstance(code, int) and code in RetryConstants.TRANSIENT_ERROR_CODES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RetryConstants.TRANSIENT_MESSAGE_MARKERS)
