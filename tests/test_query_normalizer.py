# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for query classification, normalization, pagination and descriptor parsing.
"""

from __future__ import annotations

import copy
import logging

import pytest

from mysqlalchemy import (
    JoinSpec,
    JoinType,
    MapperOptions,
    OrderDirection,
    QueryDescriptor,
    QueryNormalizer,
    QueryType,
    ShorthandQuery,
    StructuredQuery,
    classify,
)
from mysqlalchemy.mysql_query import parse_include, parse_joins, parse_order


@pytest.fixture
def normalizer() -> QueryNormalizer:
    return QueryNormalizer(MapperOptions())


class TestClassification:
    """Test shorthand vs structured detection."""

    def test_bare_keys_are_shorthand(self):
        assert isinstance(classify({"name": "alex", "limit": 5}), ShorthandQuery)

    def test_where_is_structured(self):
        assert isinstance(classify({"where": {"name": "alex"}}), StructuredQuery)

    @pytest.mark.parametrize("key", ["join", "innerJoin", "leftJoin", "rightOuterJoin", "crossJoin"])
    def test_join_keys_are_structured(self, key):
        assert isinstance(classify({key: {}}), StructuredQuery)


class TestNormalize:
    """Test building descriptors from raw mappings."""

    def test_shorthand_moves_predicates(self, normalizer):
        descriptor = normalizer.normalize({"name": "alex", "limit": 5, "order": "name"}, table="user")
        assert descriptor.where == {"name": "alex"}
        assert descriptor.limit == 5
        assert descriptor.table == "user"
        assert descriptor.order == [("name", OrderDirection.ASC)]

    def test_structured_keeps_other_keys_out_of_where(self, normalizer, caplog):
        with caplog.at_level(logging.WARNING, logger="mysqlalchemy.mysql_query"):
            descriptor = normalizer.normalize({"where": {"id": 1}, "name": "alex"}, table="user")
        assert descriptor.where == {"id": 1}
        assert "Ignoring unrecognized query keys" in caplog.text

    @pytest.mark.parametrize("raw, expected", [
        ("42", 42),
        ("-1.5", -1.5),
        ("4e2", "4e2"),
        ("0x10", "0x10"),
        (True, True),
    ])
    def test_numeric_strings_coerced(self, normalizer, raw, expected):
        descriptor = normalizer.normalize({"id": raw}, table="user")
        assert descriptor.where == {"id": expected}
        assert type(descriptor.where["id"]) is type(expected)

    def test_sort_is_order(self, normalizer):
        descriptor = normalizer.normalize({"sort": "-created_at"}, table="user")
        assert descriptor.order == [("created_at", OrderDirection.DESC)]

    def test_order_wins_over_sort(self, normalizer):
        descriptor = normalizer.normalize({"sort": "a", "order": "b"}, table="user")
        assert descriptor.order == [("b", OrderDirection.ASC)]

    def test_explicit_type(self, normalizer):
        descriptor = normalizer.normalize({"type": "delete", "where": {"id": 1}}, table="user")
        assert descriptor.type == QueryType.DELETE
        assert descriptor.limit is None
        assert descriptor.offset is None

    def test_invalid_type_rejected(self, normalizer):
        with pytest.raises(ValueError, match="Invalid query type"):
            normalizer.normalize({"type": "merge"}, table="user")

    def test_non_mapping_rejected(self, normalizer):
        with pytest.raises(ValueError):
            normalizer.normalize(["id", 1], table="user")

    def test_insert_has_no_pagination(self, normalizer):
        descriptor = normalizer.normalize({"values": {"name": "alex"}}, table="user", query_type=QueryType.INSERT)
        assert descriptor.values == {"name": "alex"}
        assert descriptor.limit is None

    def test_input_not_mutated(self, normalizer):
        raw = {"name": "alex", "sort": "name", "innerJoin": {"post": {"user_id": "$user.id$"}}}
        snapshot = copy.deepcopy(raw)
        normalizer.normalize(raw, table="user")
        assert raw == snapshot

    def test_none_is_empty_query(self, normalizer):
        descriptor = normalizer.normalize(None, table="user")
        assert descriptor.where == {}
        assert (descriptor.offset, descriptor.limit) == (0, 50)

    def test_descriptor_input_is_copied(self, normalizer):
        source = QueryDescriptor(table="user", where={"id": 1})
        descriptor = normalizer.normalize(source)
        descriptor.where["id"] = 2
        assert source.where == {"id": 1}
        assert descriptor.limit == 50

    def test_include_and_columns(self, normalizer):
        descriptor = normalizer.normalize(
            {"include": "posts, author,posts", "columns": "name", "groupBy": ["name"]}, table="user"
        )
        assert descriptor.include == ["posts", "author"]
        assert descriptor.columns == ["name"]
        assert descriptor.group_by == ["name"]

    def test_joins(self, normalizer):
        descriptor = normalizer.normalize(
            {"where": {}, "leftJoin": {"post": {"user_id": "$user.id$"}}}, table="user"
        )
        assert descriptor.joins == [
            JoinSpec(join_type=JoinType.LEFT, table="post", on={"user_id": "$user.id$"})
        ]


class TestPagination:
    """Test pagination defaults and overrides."""

    @pytest.mark.parametrize("raw, expected", [
        ({}, (0, 50)),
        ({"limit": 10}, (0, 10)),
        ({"limit": "10", "offset": "30"}, (30, 10)),
        ({"pageSize": 20, "page": 2}, (40, 20)),
        ({"limit": 5, "pageSize": 20}, (0, 20)),
        ({"limit": 500}, (0, 200)),
        ({"limit": 0}, (0, 50)),
        ({"limit": -3}, (0, 50)),
        ({"limit": 500, "page": 1}, (200, 200)),
    ])
    def test_resolution(self, normalizer, raw, expected):
        descriptor = normalizer.normalize(raw, table="user")
        assert (descriptor.offset, descriptor.limit) == expected

    def test_negative_offset_rejected(self, normalizer):
        with pytest.raises(ValueError):
            normalizer.normalize({"offset": -1}, table="user")

    def test_non_integer_rejected(self, normalizer):
        with pytest.raises(ValueError):
            normalizer.normalize({"limit": "ten"}, table="user")

    def test_options_drive_defaults(self):
        normalizer = QueryNormalizer(MapperOptions(default_limit=5, max_limit=10))
        assert normalizer.paginate() == (0, 5)
        assert normalizer.paginate(limit=50) == (0, 10)


class TestParsers:
    """Test the standalone parsing helpers."""

    @pytest.mark.parametrize("value, expected", [
        (None, []),
        ("name", [("name", OrderDirection.ASC)]),
        ("name desc, -id", [("name", OrderDirection.DESC), ("id", OrderDirection.DESC)]),
        (["name", ("id", "desc")], [("name", OrderDirection.ASC), ("id", OrderDirection.DESC)]),
        ({"name": -1, "id": "asc"}, [("name", OrderDirection.DESC), ("id", OrderDirection.ASC)]),
    ])
    def test_parse_order(self, value, expected):
        assert parse_order(value) == expected

    @pytest.mark.parametrize("value", ["name sideways", {"name": True}, 42, [("a", "b", "c")]])
    def test_parse_order_rejects(self, value):
        with pytest.raises(ValueError):
            parse_order(value)

    def test_parse_include(self):
        assert parse_include(["posts", " author ", ""]) == ["posts", "author"]
        assert parse_include(None) == []

    def test_parse_joins_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            parse_joins({"innerJoin": ["post"]})
        with pytest.raises(ValueError):
            parse_joins({"innerJoin": {"post": "user_id"}})
