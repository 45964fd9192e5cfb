# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for building model instances from rows and assembling included relations.
"""

from __future__ import annotations

import datetime
from typing import Optional

import pytest

from mysqlalchemy import MySQLBaseModel, NotFoundError, RelationAssembler, ResultHydrator, mysql_field, mysql_table

from .conftest import Post, User


@mysql_table()
class Flag(MySQLBaseModel):
    id: Optional[int] = mysql_field(primary_key=True)
    enabled: bool = False


def user_post_row(user_id, name, post_id=None, title=None):
    return {
        "user_id": user_id,
        "user_name": name,
        "posts_id": post_id,
        "posts_title": title,
        "posts_user_id": user_id if post_id is not None else None,
        "posts__fk": user_id if post_id is not None else None,
    }


class TestResultHydrator:
    """Test row-to-instance conversion for a single model."""

    def test_columns_map_to_attributes(self, sample_users):
        user = ResultHydrator(User).hydrate(sample_users)[0]
        assert user.id == 1
        assert user.fullname == "Alice Smith"
        assert user.email == "alice@example.com"

    def test_boolean_columns(self, sample_users):
        first, second = ResultHydrator(User).hydrate(sample_users)
        assert first.active is True
        assert second.active is False
        assert ResultHydrator(User).values_from_row({"active": 0}) == {"active": False}

    def test_stored_null_reads_back_as_false(self):
        flag = ResultHydrator(Flag).hydrate([{"id": 1, "enabled": None}])[0]
        assert flag.enabled is False

    def test_table_prefixed_labels_without_prefix(self):
        user = ResultHydrator(User).hydrate([{"user_id": 7, "user_name": "alex"}])[0]
        assert user.id == 7
        assert user.fullname == "alex"

    def test_bare_column_wins_over_table_label(self):
        values = ResultHydrator(User).values_from_row({"user_id": 7, "id": 8})
        assert values == {"id": 8}

    def test_json_columns(self):
        user = ResultHydrator(User).build(ResultHydrator(User).values_from_row({"id": 1, "settings": '{"theme": "dark"}'}))
        assert user.settings == {"theme": "dark"}

    def test_date_columns(self):
        hydrator = ResultHydrator(User)
        user = hydrator.hydrate([{"id": 1, "created_at": "2024-01-02T03:04:05.000Z"}])[0]
        assert user.created_at == datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)

    def test_unknown_columns_ignored(self):
        values = ResultHydrator(User).values_from_row({"id": 1, "fullname": "x", "extra": 3})
        assert values == {"id": 1}

    def test_prefixed_columns(self):
        hydrator = ResultHydrator(User)
        row = {"author_id": 7, "author_name": "Al", "id": 99, "post_title": "t"}
        assert hydrator.values_from_row(row, "author") == {"id": 7, "fullname": "Al"}

    def test_hydration_is_idempotent(self, sample_users):
        hydrator = ResultHydrator(User)
        assert hydrator.hydrate(sample_users) == hydrator.hydrate(sample_users)

    def test_hydrated_instances_are_clean(self, sample_users):
        user = ResultHydrator(User).hydrate(sample_users)[0]
        assert user.changed() == {}

    def test_hydrate_one_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            ResultHydrator(User).hydrate_one([], 42)
        assert str(exc_info.value) == "Could not find 42."
        assert exc_info.value.status == 404
        assert exc_info.value.query == 42

    def test_hydrate_one_takes_first_row(self, sample_users):
        assert ResultHydrator(User).hydrate_one(sample_users).fullname == "Alice Smith"


class TestRelationAssembler:
    """Test folding joined rows into parents with included relations."""

    def test_has_many_grouping(self, database):
        included = {"posts": database.relations.lookup(User, "posts")}
        rows = [
            user_post_row(1, "Alice", 10, "first"),
            user_post_row(1, "Alice", 11, "second"),
            user_post_row(1, "Alice", 10, "first"),
            user_post_row(2, "Bob"),
        ]
        users = RelationAssembler(User, included).assemble(rows)
        assert [user.id for user in users] == [1, 2]
        assert users[0].fullname == "Alice"
        assert [post.id for post in users[0].included["posts"]] == [10, 11]
        assert all(isinstance(post, Post) for post in users[0].included["posts"])
        assert users[0].included["posts"][1].title == "second"
        assert users[1].included["posts"] == []

    def test_parent_order_is_first_seen(self, database):
        included = {"posts": database.relations.lookup(User, "posts")}
        rows = [user_post_row(2, "Bob", 20, "b"), user_post_row(1, "Alice", 10, "a"), user_post_row(2, "Bob", 21, "c")]
        users = RelationAssembler(User, included).assemble(rows)
        assert [user.id for user in users] == [2, 1]
        assert [post.id for post in users[0].included["posts"]] == [20, 21]

    def test_belongs_to_assembly(self, database):
        included = {"author": database.relations.lookup(Post, "author")}
        rows = [
            {"post_id": 1, "post_title": "t", "post_user_id": 7, "author_id": 7, "author_name": "Al", "author__fk": 1},
            {"post_id": 2, "post_title": "u", "post_user_id": None, "author_id": None, "author_name": None,
             "author__fk": 2},
        ]
        posts = RelationAssembler(Post, included).assemble(rows)
        assert posts[0].user_id == 7
        assert [author.fullname for author in posts[0].included["author"]] == ["Al"]
        assert posts[1].included["author"] == []

    def test_marker_mismatch_ignored(self, database):
        included = {"posts": database.relations.lookup(User, "posts")}
        row = user_post_row(1, "Alice", 10, "first")
        row["posts__fk"] = 2
        users = RelationAssembler(User, included).assemble([row])
        assert users[0].included["posts"] == []

    def test_empty_rows(self, database):
        included = {"posts": database.relations.lookup(User, "posts")}
        assert RelationAssembler(User, included).assemble([]) == []
