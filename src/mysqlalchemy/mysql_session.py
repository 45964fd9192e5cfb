# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Database binding, per-model mappers and statement execution for MySQLAlchemy.

This module wires the query pipeline together::

    normalize -> expand relations -> compile -> execute (with retry) -> hydrate -> assemble

:class:`MySQLDatabase` owns the connection capability, the options and the relation
registry. :meth:`MySQLDatabase.register` builds one :class:`ModelMapper` per model class
and binds it to the class, which is how model instances reach their queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Dict, Generic, Iterator, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from .connection import ConnectionCapability, ExecutionResult
from .constants import (
    ColumnConstants,
    ErrorMessages,
    LoggingConstants,
    ModelMetadataConstants,
    QueryKeyConstants,
    QueryType,
    RetryConstants,
)
from .exceptions import ConfigurationError, NotFoundError, is_transient_conflict
from .mysql_hydration import RelationAssembler, ResultHydrator
from .mysql_orm import ModelDefinition, build_model_definition
from .mysql_query import QueryDescriptor, QueryNormalizer
from .mysql_query_builder import CompiledStatement, ExpandedQuery, RelationExpander, SQLCompiler
from .mysql_relations import RelationDefinition, RelationRegistry, build_accessors
from .settings import MapperOptions

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType")

QueryInput = Union[Mapping[str, Any], QueryDescriptor, None]


def _truncate(text: str) -> str:
    limit = LoggingConstants.QUERY_TRUNCATE_LENGTH
    return text[:limit] + "..." if len(text) > limit else text


class ExecutionWrapper:
    """
    Sends compiled statements through the connection capability.

    Transient conflicts (deadlock, lock wait timeout) are retried with the identical
    statement, strictly sequentially, with exponential backoff. After the retry cap, or
    on any other error, the last error is re-raised unchanged.
    """

    def __init__(self, connection: ConnectionCapability, options: MapperOptions):
        self.connection = connection
        self.options = options

    @property
    def max_attempts(self) -> int:
        return 1 + min(self.options.max_retries, RetryConstants.MAX_RETRIES)

    def execute(self, statement: CompiledStatement) -> ExecutionResult:
        max_attempts = self.max_attempts
        backoff_s = self.options.retry_backoff_s
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.connection.execute(statement.text, statement.parameters)
            except Exception as error:
                if not is_transient_conflict(error):
                    logger.error(LoggingConstants.EXECUTION_FAILED.format(
                        error=error, query=_truncate(statement.text)
                    ))
                    raise
                if attempt >= max_attempts:
                    logger.error(LoggingConstants.RETRIES_EXHAUSTED.format(attempts=attempt, error=error))
                    raise
                logger.warning(LoggingConstants.TRANSIENT_RETRY.format(
                    attempt=attempt, max_attempts=max_attempts, backoff=backoff_s, error=error
                ))
                if backoff_s > 0:
                    time.sleep(backoff_s)
                backoff_s = min(backoff_s * RetryConstants.BACKOFF_MULTIPLIER, self.options.retry_backoff_max_s)


@dataclass
class Page(Generic[ModelType]):
    """One page of a collection query."""
    data: List[ModelType] = field(default_factory=list)
    limit: int = 0
    offset: int = 0
    total: int = 0

    def __iter__(self) -> Iterator[ModelType]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)


class ModelMapper:
    """
    Query and persistence capability for one model class.

    Obtained through :meth:`MySQLDatabase.register`; also reachable as
    ``Model.mapper()`` once registered.
    """

    def __init__(self, database: "MySQLDatabase", model: Type[Any]):
        self.database = database
        self.model = model
        self.definition: ModelDefinition = build_model_definition(model)
        self.hydrator = ResultHydrator(model)

    def __repr__(self) -> str:
        return f"ModelMapper({self.definition.name}, table={self.definition.table_name!r})"

    # ----- pipeline -----
    def descriptor(self, query: Any = None, query_type: QueryType = QueryType.SELECT) -> QueryDescriptor:
        """Normalize ``query``; a bare value is a primary key lookup."""
        if query is not None and not isinstance(query, (Mapping, QueryDescriptor)):
            query = {QueryKeyConstants.WHERE: {self.definition.primary_key: query}}
        return self.database.normalizer.normalize(
            query, table=self.definition.table_name, query_type=query_type
        )

    def expand(self, descriptor: QueryDescriptor) -> ExpandedQuery:
        self.database.finalize()
        return self.database.expander.expand(self.model, descriptor)

    def compile_query(self, query: QueryInput = None) -> CompiledStatement:
        """Compile without executing."""
        return self.database.compiler.compile(self.expand(self.descriptor(query)).descriptor)

    def execute(self, descriptor: QueryDescriptor) -> Tuple[ExpandedQuery, ExecutionResult]:
        expanded = self.expand(descriptor)
        statement = self.database.compiler.compile(expanded.descriptor)
        return expanded, self.database.executor.execute(statement)

    # ----- reads -----
    def run_query(self, query: QueryInput = None) -> Union[Page[Any], ExecutionResult]:
        """
        Run any descriptor. Selects return a :class:`Page` with the total row count;
        insert, update and delete return the raw :class:`ExecutionResult`.
        """
        descriptor = self.descriptor(query)
        if descriptor.type != QueryType.SELECT:
            return self.execute(descriptor)[1]
        return self._page(descriptor)

    def all(self, query: QueryInput = None) -> Page[Any]:
        descriptor = self.descriptor(query)
        descriptor.type = QueryType.SELECT
        return self._page(descriptor)

    def _page(self, descriptor: QueryDescriptor) -> Page[Any]:
        total = self._count(descriptor)
        data = self._select(descriptor)
        return Page(data=data, limit=descriptor.limit, offset=descriptor.offset, total=total)

    def find(self, id_or_query: Any) -> Any:
        """
        Single instance by primary key value or query.

        Raises:
            NotFoundError: When no row matches
        """
        descriptor = self.descriptor(id_or_query)
        descriptor.limit = 1
        expanded, result = self.execute(descriptor)
        if expanded.included:
            instances = RelationAssembler(self.model, expanded.included).assemble(result.rows)
            if not instances:
                raise NotFoundError(ErrorMessages.NOT_FOUND.format(query=id_or_query), query=id_or_query)
            return instances[0]
        return self.hydrator.hydrate_one(result.rows, id_or_query)

    get = find

    def count(self, query: QueryInput = None) -> int:
        return self._count(self.descriptor(query))

    def _count(self, descriptor: QueryDescriptor) -> int:
        counted = descriptor.copy(
            columns=[ColumnConstants.COUNT_ALL],
            order=[],
            group_by=[],
            include=[],
            limit=None,
            offset=None,
        )
        _, result = self.execute(counted)
        if not result.rows:
            return 0
        return int(next(iter(result.rows[0].values())) or 0)

    def _select(self, descriptor: QueryDescriptor) -> List[Any]:
        expanded, result = self.execute(descriptor)
        if expanded.included:
            return RelationAssembler(self.model, expanded.included).assemble(result.rows)
        return self.hydrator.hydrate(result.rows)

    # ----- writes -----
    def persist(self, instance: Any) -> Dict[str, Any]:
        """
        Insert an instance (or a mapping of attribute values).

        The primary key is taken from the driver's last insert id when the instance
        has none. Returns the instance attributes after the insert.
        """
        if isinstance(instance, Mapping):
            instance = self.model.model_validate(dict(instance))
        descriptor = QueryDescriptor(
            type=QueryType.INSERT,
            table=self.definition.table_name,
            values=instance.storage_values(),
        )
        _, result = self.execute(descriptor)
        if instance.primary() is None and result.last_insert_id:
            setattr(instance, self.definition.primary_key, result.last_insert_id)
        instance.mark_clean()
        return instance.model_dump()

    def apply_update(self, instance: Any) -> Dict[str, Any]:
        """Update changed attributes by primary key; nothing is written when none changed."""
        primary_key = self.definition.primary_key
        pk_value = instance.primary()
        if pk_value is None:
            raise ValueError(ErrorMessages.PRIMARY_KEY_NOT_SET.format(model_name=self.definition.name))
        values = instance.changed()
        values.pop(primary_key, None)
        if not values:
            return {}
        descriptor = QueryDescriptor(
            type=QueryType.UPDATE,
            table=self.definition.table_name,
            where={primary_key: pk_value},
            values=values,
        )
        self.execute(descriptor)
        instance.mark_clean()
        return values

    def remove(self, instance: Any) -> None:
        pk_value = instance.primary()
        if pk_value is None:
            raise ValueError(ErrorMessages.PRIMARY_KEY_NOT_SET.format(model_name=self.definition.name))
        descriptor = QueryDescriptor(
            type=QueryType.DELETE,
            table=self.definition.table_name,
            where={self.definition.primary_key: pk_value},
        )
        self.execute(descriptor)

    # ----- relations -----
    def relation_accessors(self, instance: Any) -> Dict[str, Any]:
        return build_accessors(self.database.relations, instance)


class MySQLDatabase:
    """
    Explicit binding of models to one connection capability and one set of options.

    Example::

        database = MySQLDatabase(SQLAlchemyConnection(engine), MapperOptions(max_limit=100))
        database.register(User)
        database.register(Post)
        database.has_many(User, Post, foreign_key="user_id")

        page = User.mapper().all({"name": "alex", "limit": 10})
    """

    def __init__(self, connection: ConnectionCapability, options: Optional[MapperOptions] = None):
        self.connection = connection
        self.options = options or MapperOptions()
        self.definitions: Dict[str, ModelDefinition] = {}
        self.relations = RelationRegistry(model_listener=self.register)
        self.normalizer = QueryNormalizer(self.options)
        self.expander = RelationExpander(self.relations)
        self.compiler = SQLCompiler(self.definitions)
        self.executor = ExecutionWrapper(connection, self.options)
        self._mappers: Dict[Type[Any], ModelMapper] = {}

    def register(self, model: Type[Any]) -> ModelMapper:
        """Build the mapper of ``model`` and bind it to the class. Idempotent."""
        existing = self._mappers.get(model)
        if existing is not None:
            return existing
        mapper = ModelMapper(self, model)
        self._mappers[model] = mapper
        self.definitions[mapper.definition.table_name] = mapper.definition
        setattr(model, ModelMetadataConstants.MAPPER_ATTR, mapper)
        return mapper

    def mapper(self, model: Type[Any]) -> ModelMapper:
        mapper = self._mappers.get(model)
        if mapper is None:
            raise ConfigurationError(ErrorMessages.MODEL_NOT_REGISTERED.format(model_name=model.__name__))
        return mapper

    def finalize(self) -> None:
        """Freeze relation declarations; done automatically before the first statement."""
        if not self.relations.is_finalized:
            self.relations.finalize()

    # ----- relation shortcuts -----
    def has_many(self, owner: Type[Any], target: Type[Any], **kwargs: Any) -> RelationDefinition:
        self.register(owner)
        self.register(target)
        return self.relations.declare_has_many(owner, target, **kwargs)

    def belongs_to(self, parent: Type[Any], child: Type[Any], **kwargs: Any) -> RelationDefinition:
        self.register(parent)
        self.register(child)
        return self.relations.declare_belongs_to(parent, child, **kwargs)

    def many_to_many(
        self, model_a: Type[Any], model_b: Type[Any], **kwargs: Any
    ) -> Tuple[RelationDefinition, RelationDefinition]:
        self.register(model_a)
        self.register(model_b)
        if kwargs.get("through") is not None:
            self.register(kwargs["through"])
        return self.relations.declare_many_to_many(model_a, model_b, **kwargs)


__all__: List[str] = [
    "ExecutionWrapper",
    "MySQLDatabase",
    "ModelMapper",
    "Page",
]
