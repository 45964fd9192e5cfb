# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
MySQLAlchemy: declarative, relation-aware data mapping for MySQL.

Object-shaped query descriptors and declared model relations are translated into
MySQL statements (compiled with SQLAlchemy Core), executed through a connection
capability, and turned back into typed pydantic models.
"""

from __future__ import annotations

from .connection import ConnectionCapability, ExecutionResult, SQLAlchemyConnection
from .constants import (
    AttributeType,
    DateStorage,
    JoinType,
    OrderDirection,
    QueryType,
    RelationKind,
)
from .exceptions import (
    ConfigurationError,
    ExecutionFailure,
    MySQLAlchemyError,
    NotFoundError,
    TransientConflictError,
)
from .mysql_hydration import RelationAssembler, ResultHydrator
from .mysql_orm import (
    UNDEFINED,
    AttributeDefinition,
    ModelDefinition,
    MySQLBaseModel,
    build_model_definition,
    mysql_field,
    mysql_table,
)
from .mysql_query import (
    ColumnSpec,
    JoinSpec,
    QueryDescriptor,
    QueryNormalizer,
    ShorthandQuery,
    StructuredQuery,
    classify,
)
from .mysql_query_builder import (
    CompiledStatement,
    ExpandedQuery,
    RelationExpander,
    SQLCompiler,
    ValueCoercer,
)
from .mysql_relations import RelationDefinition, RelationRegistry
from .mysql_session import ExecutionWrapper, ModelMapper, MySQLDatabase, Page
from .settings import MapperOptions

__version__ = "0.1.0"

__all__ = [
    "UNDEFINED",
    "AttributeDefinition",
    "AttributeType",
    "ColumnSpec",
    "CompiledStatement",
    "ConfigurationError",
    "ConnectionCapability",
    "DateStorage",
    "ExecutionFailure",
    "ExecutionResult",
    "ExecutionWrapper",
    "ExpandedQuery",
    "JoinSpec",
    "JoinType",
    "MapperOptions",
    "ModelDefinition",
    "ModelMapper",
    "MySQLAlchemyError",
    "MySQLBaseModel",
    "MySQLDatabase",
    "NotFoundError",
    "OrderDirection",
    "Page",
    "QueryDescriptor",
    "QueryNormalizer",
    "QueryType",
    "RelationAssembler",
    "RelationDefinition",
    "RelationExpander",
    "RelationKind",
    "RelationRegistry",
    "ResultHydrator",
    "SQLAlchemyConnection",
    "SQLCompiler",
    "ShorthandQuery",
    "StructuredQuery",
    "TransientConflictError",
    "ValueCoercer",
    "build_model_definition",
    "classify",
    "mysql_field",
    "mysql_table",
]
