# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for MySQLAlchemy.

This module centralizes all constants, configuration defaults, and literal strings
used throughout the MySQLAlchemy codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for MySQLAlchemy
:author: MySQLAlchemy Contributors
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final, FrozenSet, Tuple


# ============================================================================
# SEMANTIC TYPES
# ============================================================================

class AttributeType(StrEnum):
    """Semantic type of a model attribute."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"


class DateStorage(StrEnum):
    """
    Storage representation of a date-typed column.

    :class: DateStorage
    :synopsis: How date values are rendered for insert/update statements
    """

    DATETIME = "datetime"    # ISO-8601 string
    TIMESTAMP = "timestamp"  # 'YYYY-MM-DD HH:MM:SS' literal
    INTEGER = "integer"      # epoch seconds


class RelationKind(StrEnum):
    """Relationship kinds understood by the relation registry."""

    HAS_MANY = "hasMany"
    BELONGS_TO = "belongsTo"
    MANY_TO_MANY = "manyToMany"


class QueryType(StrEnum):
    """Statement kinds of a query descriptor."""

    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class JoinType(StrEnum):
    """Join types supported by the SQL compiler."""

    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"


class OrderDirection(StrEnum):
    """Ordering directions."""

    ASC = "asc"
    DESC = "desc"


# ============================================================================
# QUERY DESCRIPTOR KEYS
# ============================================================================

class QueryKeyConstants:
    """Top-level keys of a loosely-shaped query descriptor."""

    # @@ STEP 1: Define structural keys
    COLUMNS: Final[str] = "columns"
    TABLE: Final[str] = "table"
    TYPE: Final[str] = "type"
    VALUES: Final[str] = "values"
    WHERE: Final[str] = "where"
    OFFSET: Final[str] = "offset"
    LIMIT: Final[str] = "limit"
    SORT: Final[str] = "sort"
    ORDER: Final[str] = "order"
    GROUP_BY: Final[str] = "groupBy"
    INCLUDE: Final[str] = "include"

    # @@ STEP 2: Define pagination shorthand keys
    PAGE: Final[str] = "page"
    PAGE_SIZE: Final[str] = "pageSize"

    # @@ STEP 3: Keys never treated as implicit equality predicates
    RESERVED_KEYS: Final[FrozenSet[str]] = frozenset({
        COLUMNS, TABLE, TYPE, VALUES, WHERE, OFFSET, LIMIT,
        SORT, ORDER, GROUP_BY, INCLUDE, PAGE, PAGE_SIZE,
    })

    # @@ STEP 4: Structured-key detection
    JOIN_SUFFIX: Final[str] = "Join"
    INCLUDE_SEPARATOR: Final[str] = ","


class JoinKeyConstants:
    """Descriptor join keys and the join type each one denotes."""

    JOIN: Final[str] = "join"
    INNER_JOIN: Final[str] = "innerJoin"
    LEFT_JOIN: Final[str] = "leftJoin"
    LEFT_OUTER_JOIN: Final[str] = "leftOuterJoin"
    RIGHT_JOIN: Final[str] = "rightJoin"
    RIGHT_OUTER_JOIN: Final[str] = "rightOuterJoin"

    JOIN_TYPES: Final[Tuple[Tuple[str, JoinType], ...]] = (
        (JOIN, JoinType.INNER),
        (INNER_JOIN, JoinType.INNER),
        (LEFT_JOIN, JoinType.LEFT),
        (LEFT_OUTER_JOIN, JoinType.LEFT),
        (RIGHT_JOIN, JoinType.RIGHT),
        (RIGHT_OUTER_JOIN, JoinType.RIGHT),
    )


class OperatorConstants:
    """Operator keys accepted inside ``where`` expressions."""

    OR: Final[str] = "$or"
    AND: Final[str] = "$and"
    EQUALS: Final[str] = "$equals"
    NE: Final[str] = "$ne"
    NEQ: Final[str] = "$neq"
    GT: Final[str] = "$gt"
    GTE: Final[str] = "$gte"
    LT: Final[str] = "$lt"
    LTE: Final[str] = "$lte"
    IN: Final[str] = "$in"
    NIN: Final[str] = "$nin"
    LIKE: Final[str] = "$like"
    NULL: Final[str] = "$null"

    OPERATOR_PREFIX: Final[str] = "$"
    # '$table.column$' marks a column reference rather than a bound value
    COLUMN_REF_DELIMITER: Final[str] = "$"


# ============================================================================
# COLUMN LABELS
# ============================================================================

class ColumnConstants:
    """Column naming conventions used by the compiler and hydrator."""

    WILDCARD: Final[str] = "*"
    COUNT_ALL: Final[str] = "count(*)"
    QUALIFIER: Final[str] = "."
    PREFIX_SEPARATOR: Final[str] = "_"
    FOREIGN_KEY_MARKER: Final[str] = "__fk"


class NamingConstants:
    """Defaults used when deriving names for tables, aliases and keys."""

    KEY_SEPARATOR: Final[str] = "_"
    DEFAULT_PRIMARY_KEY: Final[str] = "id"
    PLURAL_SUFFIX: Final[str] = "s"
    PLURAL_Y_SUFFIX: Final[str] = "ies"
    PLURAL_ES_SUFFIX: Final[str] = "es"
    VOWEL_Y_ENDINGS: Final[Tuple[str, ...]] = ("ay", "ey", "iy", "oy", "uy")
    ES_ENDINGS: Final[Tuple[str, ...]] = ("s", "x", "z", "ch", "sh")


# ============================================================================
# PAGINATION / RETRY DEFAULTS
# ============================================================================

class PaginationConstants:
    """Pagination defaults."""

    DEFAULT_OFFSET: Final[int] = 0
    DEFAULT_LIMIT: Final[int] = 50
    MAX_LIMIT: Final[int] = 200


class RetryConstants:
    """Transient-conflict retry policy."""

    MAX_RETRIES: Final[int] = 3
    INITIAL_BACKOFF_S: Final[float] = 0.05
    MAX_BACKOFF_S: Final[float] = 0.5
    BACKOFF_MULTIPLIER: Final[float] = 2.0

    # MySQL ER_LOCK_DEADLOCK and ER_LOCK_WAIT_TIMEOUT
    TRANSIENT_ERROR_CODES: Final[FrozenSet[int]] = frozenset({1213, 1205})
    TRANSIENT_MESSAGE_MARKERS: Final[Tuple[str, ...]] = ("deadlock", "lock wait timeout")


class NotFoundConstants:
    """Not-found marker values."""

    STATUS: Final[int] = 404


class DateFormatConstants:
    """Date rendering formats."""

    TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
    ISO_UTC_SUFFIX: Final[str] = "Z"
    ISO_UTC_OFFSET: Final[str] = "+00:00"


class NumericConstants:
    """Exact-match pattern for numeric-looking strings."""

    NUMERIC_PATTERN: Final[str] = r"-?\d+(\.\d+)?"


# ============================================================================
# MODEL METADATA
# ============================================================================

class ModelMetadataConstants:
    """Attribute names used to attach metadata to model classes and fields."""

    MYSQL_FIELD_METADATA: Final[str] = "mysql_metadata"
    TABLE_NAME_ATTR: Final[str] = "__mysql_table_name__"
    IS_TABLE_ATTR: Final[str] = "__is_mysql_table__"
    MAPPER_ATTR: Final[str] = "__mysql_mapper__"
    DEFINITION_CACHE_ATTR: Final[str] = "__mysql_cached_definition__"


# ============================================================================
# MESSAGES
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Define configuration errors
    DUPLICATE_ALIAS: Final[str] = "Relation alias '{alias}' is already declared on {model_name}"
    MISSING_FOREIGN_KEY: Final[str] = "Relation '{alias}' on {model_name} requires a foreign_key"
    REGISTRY_FINALIZED: Final[str] = "Relation registry is finalized; cannot declare '{alias}' on {model_name}"
    MODEL_NOT_REGISTERED: Final[str] = "Model {model_name} is not registered with a database"
    NOT_A_TABLE_MODEL: Final[str] = "{model_name} is not decorated with @mysql_table"
    MISSING_PRIMARY_KEY: Final[str] = "Model {model_name} declares no primary key"
    DUPLICATE_PRIMARY_KEY: Final[str] = "Model {model_name} declares more than one primary key"
    DUPLICATE_COLUMN: Final[str] = "Model {model_name} maps column '{column}' more than once"

    # @@ STEP 2: Define query errors
    UNKNOWN_OPERATOR: Final[str] = "Unknown where operator: {operator}"
    INVALID_ORDER: Final[str] = "Invalid order specification: {value!r}"
    INVALID_JOIN: Final[str] = "Join specification for '{table}' must be a mapping"
    INVALID_QUERY_TYPE: Final[str] = "Invalid query type: {value!r}"
    INVALID_DESCRIPTOR: Final[str] = "Query descriptor must be a mapping, got {type_name}"
    INVALID_PAGINATION: Final[str] = "Invalid value for '{key}': {value!r}"
    MISSING_VALUES: Final[str] = "{query_type} statement requires values"
    MISSING_TABLE: Final[str] = "Query descriptor names no table"
    UNKNOWN_SOURCE: Final[str] = "Unknown table or alias '{name}' in query"
    UNKNOWN_COLUMN: Final[str] = "Unknown column '{column}' on '{name}'"

    # @@ STEP 3: Define execution errors
    NOT_FOUND: Final[str] = "Could not find {query}."
    PRIMARY_KEY_NOT_SET: Final[str] = "{model_name} instance has no primary key value"
    CONNECTION_CLOSED: Final[str] = "Connection is closed"


class LoggingConstants:
    """Logging message templates."""

    NORMALIZED_QUERY: Final[str] = "Normalized {variant} query for {table}: {descriptor}"
    IGNORED_KEYS: Final[str] = "Ignoring unrecognized query keys for {table}: {keys}"
    UNKNOWN_INCLUDE: Final[str] = "Skipping unknown relation '{alias}' in include for {model_name}"
    COMPILED_STATEMENT: Final[str] = "Compiled {query_type} on {table}: {text} {parameters}"
    TRANSIENT_RETRY: Final[str] = (
        "Transient conflict on attempt {attempt}/{max_attempts}; retrying in {backoff:.3f}s: {error}"
    )
    RETRIES_EXHAUSTED: Final[str] = "Transient conflict persisted after {attempts} attempts: {error}"
    EXECUTION_FAILED: Final[str] = "Statement failed: {error}. Query: {query}"
    ASSEMBLED_ROWS: Final[str] = "Assembled {rows} rows into {parents} {model_name} instances"
    RELATION_DECLARED: Final[str] = "Declared {kind} {owner}.{alias} -> {target}"
    JUNCTION_CREATED: Final[str] = "Created junction model {name} (table {table})"
    QUERY_TRUNCATE_LENGTH: Final[int] = 100
