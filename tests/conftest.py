# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for MySQLAlchemy tests.
"""

from __future__ import annotations

from collections import deque
import datetime
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from mysqlalchemy import (
    DateStorage,
    ExecutionResult,
    MapperOptions,
    MySQLBaseModel,
    MySQLDatabase,
    mysql_field,
    mysql_table,
)


class FakeConnection:
    """
    Scripted connection capability.

    Responses are consumed in order; an exception instance is raised instead of
    returned. Once the script is exhausted every call returns an empty result.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.responses: Deque[Union[ExecutionResult, BaseException]] = deque()

    def queue(self, *responses: Union[ExecutionResult, BaseException]) -> "FakeConnection":
        self.responses.extend(responses)
        return self

    def queue_rows(self, *rows: Dict[str, Any]) -> "FakeConnection":
        return self.queue(ExecutionResult(rows=list(rows), columns=list(rows[0]) if rows else []))

    def execute(self, text: str, parameters: Sequence[Any] = ()) -> ExecutionResult:
        self.calls.append((text, tuple(parameters)))
        if not self.responses:
            return ExecutionResult()
        response = self.responses.popleft()
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.calls]


# Test model definitions
@mysql_table()
class User(MySQLBaseModel):
    """Test user model."""
    id: Optional[int] = mysql_field(primary_key=True)
    fullname: Optional[str] = mysql_field(column_name="name")
    email: Optional[str] = None
    active: Optional[bool] = None
    settings: Optional[dict] = None
    created_at: Optional[datetime.datetime] = mysql_field(date_storage=DateStorage.DATETIME)


@mysql_table()
class Post(MySQLBaseModel):
    """Test post model."""
    id: Optional[int] = mysql_field(primary_key=True)
    title: Optional[str] = None
    user_id: Optional[int] = None


@mysql_table()
class Tag(MySQLBaseModel):
    """Test tag model."""
    id: Optional[int] = mysql_field(primary_key=True)
    label: Optional[str] = None


@pytest.fixture(scope="function")
def connection() -> FakeConnection:
    """Provide a fresh scripted connection."""
    return FakeConnection()


@pytest.fixture(scope="function")
def options() -> MapperOptions:
    """Options with retry sleeps disabled."""
    return MapperOptions(retry_backoff_s=0.0)


@pytest.fixture(scope="function")
def database(connection: FakeConnection, options: MapperOptions) -> MySQLDatabase:
    """
    Database bound to the fake connection with the test relations declared:

    - ``User.posts`` / ``Post.author`` through ``post.user_id``
    - ``Post.tags`` / ``Tag.posts`` through the ``post_tag`` junction
    """
    db = MySQLDatabase(connection, options)
    db.has_many(User, Post, foreign_key="user_id")
    db.belongs_to(User, Post, alias="author", foreign_key="user_id")
    db.many_to_many(Post, Tag)
    return db


@pytest.fixture(scope="function")
def test_models() -> Dict[str, Any]:
    """Provide test model classes."""
    return {"User": User, "Post": Post, "Tag": Tag}


@pytest.fixture(scope="function")
def sample_users() -> List[Dict[str, Any]]:
    """Provide sample user rows as stored."""
    return [
        {"id": 1, "name": "Alice Smith", "email": "alice@example.com", "active": 1, "settings": None, "created_at": None},
        {"id": 2, "name": "Bob Johnson", "email": "bob@example.com", "active": None, "settings": None, "created_at": None},
    ]
