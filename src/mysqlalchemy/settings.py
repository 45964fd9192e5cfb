# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Mapper options passed explicitly to :class:`~mysqlalchemy.mysql_session.MySQLDatabase`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import PaginationConstants, RetryConstants


class MapperOptions(BaseModel):
    """
    Validated, immutable options for a database binding.

    :param default_limit: Limit applied to select queries that give none
    :param max_limit: Upper bound for any requested limit
    :param max_retries: Additional attempts after a transient conflict (at most 3)
    :param retry_backoff_s: Initial sleep between retries
    :param retry_backoff_max_s: Cap for the exponential backoff
    """

    model_config = ConfigDict(frozen=True)

    default_limit: int = Field(default=PaginationConstants.DEFAULT_LIMIT, gt=0)
    max_limit: int = Field(default=PaginationConstants.MAX_LIMIT, gt=0)
    max_retries: int = Field(default=RetryConstants.MAX_RETRIES, ge=0, le=RetryConstants.MAX_RETRIES)
    retry_backoff_s: float = Field(default=RetryConstants.INITIAL_BACKOFF_S, ge=0.0)
    retry_backoff_max_s: float = Field(default=RetryConstants.MAX_BACKOFF_S, ge=0.0)

    @model_validator(mode="after")
    def _default_within_max(self) -> "MapperOptions":
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit ({self.default_limit}) exceeds max_limit ({self.max_limit})"
            )
        return self
