# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Relation expansion, value coercion and SQL compilation for MySQLAlchemy.

The expander rewrites relation-aware predicates and ``include`` directives of a
canonical :class:`~mysqlalchemy.mysql_query.QueryDescriptor` into plain joins and
labelled columns. The compiler then builds a SQLAlchemy Core expression tree from the
descriptor, translating attribute names to storage columns while the tree is built,
and renders it with the MySQL dialect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import calendar
import datetime
import json
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

import sqlalchemy as sa
from sqlalchemy.dialects import mysql
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import FromClause, TableClause

from .constants import (
    AttributeType,
    ColumnConstants,
    DateFormatConstants,
    DateStorage,
    ErrorMessages,
    JoinType,
    LoggingConstants,
    OperatorConstants,
    OrderDirection,
    QueryType,
    RelationKind,
)
from .mysql_orm import UNDEFINED, AttributeDefinition, ModelDefinition
from .mysql_query import ColumnSpec, JoinSpec, QueryDescriptor
from .mysql_relations import RelationDefinition, RelationRegistry, column_ref, qualified

logger = logging.getLogger(__name__)

_COLUMN_REF_RE = re.compile(
    r"^{d}([A-Za-z0-9_]+)\.([A-Za-z0-9_]+){d}$".format(d=re.escape(OperatorConstants.COLUMN_REF_DELIMITER))
)


# -----------------------------------------------------------------------------
# Value coercion
# -----------------------------------------------------------------------------

def render_date(value: Union[datetime.datetime, datetime.date], storage: DateStorage) -> Any:
    """Render a date for storage. Naive datetimes are taken as UTC."""
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day, tzinfo=datetime.timezone.utc)
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    else:
        value = value.replace(tzinfo=datetime.timezone.utc)

    if storage == DateStorage.INTEGER:
        return calendar.timegm(value.utctimetuple())
    if storage == DateStorage.TIMESTAMP:
        return value.strftime(DateFormatConstants.TIMESTAMP_FORMAT)
    text = value.isoformat(timespec="milliseconds")
    return text.replace(DateFormatConstants.ISO_UTC_OFFSET, DateFormatConstants.ISO_UTC_SUFFIX)


class ValueCoercer:
    """
    Prepares insert/update values of one model for storage.

    Per value, in order: the attribute formatter, date rendering by storage
    representation, JSON encoding, boolean mapping (``True`` -> 1, ``False`` -> NULL).
    ``UNDEFINED`` removes the key.
    """

    def __init__(self, definition: Optional[ModelDefinition]):
        self.definition = definition

    def coerce(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        coerced: Dict[str, Any] = {}
        for name, value in values.items():
            attr = self.definition.attributes.get(name) if self.definition is not None else None
            value = self.coerce_value(attr, value)
            if value is UNDEFINED:
                continue
            coerced[name] = value
        return coerced

    def coerce_value(self, attr: Optional[AttributeDefinition], value: Any) -> Any:
        if value is UNDEFINED:
            return value
        if attr is not None and attr.formatter is not None:
            value = attr.formatter(value, self.definition.model_class)
            if value is UNDEFINED:
                return value

        if isinstance(value, bool):
            return 1 if value else None
        if isinstance(value, (datetime.datetime, datetime.date)):
            storage = attr.date_storage if attr is not None else DateStorage.DATETIME
            return render_date(value, storage)
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if attr is not None and attr.attr_type == AttributeType.JSON and value is not None:
            return json.dumps(value)
        return value


# -----------------------------------------------------------------------------
# Relation expansion
# -----------------------------------------------------------------------------

@dataclass
class ExpandedQuery:
    """A rewritten descriptor plus the relations its ``include`` list resolved to."""
    model: Type[Any]
    descriptor: QueryDescriptor
    included: Dict[str, RelationDefinition] = field(default_factory=dict)


class RelationExpander:
    """
    Rewrites relation-aware query parts against a :class:`RelationRegistry`.

    Example::

        expander = RelationExpander(registry)
        expanded = expander.expand(Post, normalizer.normalize({"tags": 3}))
        # joins post_tag on post_tag.post_id = posts.id, tests post_tag.tag_id = 3
    """

    def __init__(self, registry: RelationRegistry):
        self.registry = registry

    def expand(self, model: Type[Any], descriptor: QueryDescriptor) -> ExpandedQuery:
        definition: ModelDefinition = model.definition()
        expanded = descriptor.copy()
        if expanded.table is None:
            expanded.table = definition.table_name

        # @@ STEP 1: Relation-aware predicates become joins and column tests
        expanded.where = self._expand_where(model, definition, expanded)

        # @@ STEP 2: Include directives become outer joins and labelled columns
        included = self._expand_includes(model, definition, expanded)

        # @@ STEP 3: Storage rendering of written values
        if expanded.type in (QueryType.INSERT, QueryType.UPDATE):
            expanded.values = ValueCoercer(definition).coerce(expanded.values)

        return ExpandedQuery(model=model, descriptor=expanded, included=included)

    # ----- where -----
    def _expand_where(
        self, model: Type[Any], definition: ModelDefinition, descriptor: QueryDescriptor
    ) -> Dict[str, Any]:
        rewritten: Dict[str, Any] = {}
        for key, value in descriptor.where.items():
            if key.startswith(OperatorConstants.OPERATOR_PREFIX) or ColumnConstants.QUALIFIER in key:
                rewritten[key] = value
                continue
            relation = self.registry.lookup(model, key)
            if relation is None:
                rewritten[key] = value
                continue
            rewritten[self._rewrite_predicate(model, definition, descriptor, relation)] = value
        return rewritten

    def _rewrite_predicate(
        self,
        model: Type[Any],
        definition: ModelDefinition,
        descriptor: QueryDescriptor,
        relation: RelationDefinition,
    ) -> str:
        owns = relation.owner is model
        if owns and relation.kind == RelationKind.BELONGS_TO:
            return relation.foreign_key

        pk_ref = column_ref(definition.table_name, definition.primary_key)
        if relation.through is not None:
            junction = relation.through_definition.table_name
            if owns:
                on, tested = {relation.foreign_key: pk_ref}, relation.through_key
            else:
                on, tested = {relation.through_key: pk_ref}, relation.foreign_key
            self._ensure_join(descriptor, JoinSpec(join_type=JoinType.INNER, table=junction, on=on))
            descriptor.distinct = True
            return qualified(junction, tested)

        if owns:
            target_def = relation.target_definition
            self._ensure_join(descriptor, JoinSpec(
                join_type=JoinType.INNER,
                table=target_def.table_name,
                on={relation.foreign_key: pk_ref},
            ))
            descriptor.distinct = True
            return qualified(target_def.table_name, target_def.primary_key)

        return relation.foreign_key

    @staticmethod
    def _ensure_join(descriptor: QueryDescriptor, join: JoinSpec) -> None:
        if any(existing.name == join.name for existing in descriptor.joins):
            return
        descriptor.joins.append(join)

    # ----- include -----
    def _expand_includes(
        self, model: Type[Any], definition: ModelDefinition, descriptor: QueryDescriptor
    ) -> Dict[str, RelationDefinition]:
        if not descriptor.include:
            return {}
        relations = self.registry.relations_for(model)
        included: Dict[str, RelationDefinition] = {}
        related_columns: List[ColumnSpec] = []
        for alias in descriptor.include:
            relation = relations.get(alias)
            if relation is None:
                logger.warning(LoggingConstants.UNKNOWN_INCLUDE.format(alias=alias, model_name=definition.name))
                continue
            included[alias] = relation
            related_columns.extend(self._include_relation(definition, descriptor, relation))

        descriptor.include = list(included)
        if included:
            descriptor.columns = self._base_columns(definition, descriptor.columns) + related_columns
        return included

    def _include_relation(
        self, definition: ModelDefinition, descriptor: QueryDescriptor, relation: RelationDefinition
    ) -> List[ColumnSpec]:
        base = definition.table_name
        target_def = relation.target_definition
        join_alias = None if relation.alias == target_def.table_name else relation.alias
        join_name = join_alias or target_def.table_name
        marker_label = f"{relation.alias}{ColumnConstants.FOREIGN_KEY_MARKER}"

        if relation.kind == RelationKind.BELONGS_TO:
            joins = [JoinSpec(
                join_type=JoinType.LEFT,
                table=target_def.table_name,
                on={target_def.primary_key: column_ref(base, relation.foreign_key)},
                alias=join_alias,
                for_include=True,
            )]
            marker = ColumnSpec(name=definition.primary_key, table=base, label=marker_label)
        elif relation.through is None:
            joins = [JoinSpec(
                join_type=JoinType.LEFT,
                table=target_def.table_name,
                on={relation.foreign_key: column_ref(base, definition.primary_key)},
                alias=join_alias,
                for_include=True,
            )]
            marker = ColumnSpec(name=relation.foreign_key, table=join_name, label=marker_label)
        else:
            junction_def = relation.through_definition
            junction_name = f"{relation.alias}{ColumnConstants.PREFIX_SEPARATOR}{junction_def.table_name}"
            joins = [
                JoinSpec(
                    join_type=JoinType.LEFT,
                    table=junction_def.table_name,
                    on={relation.foreign_key: column_ref(base, definition.primary_key)},
                    alias=junction_name,
                    for_include=True,
                ),
                JoinSpec(
                    join_type=JoinType.LEFT,
                    table=target_def.table_name,
                    on={target_def.primary_key: column_ref(junction_name, relation.through_key)},
                    alias=join_alias,
                    for_include=True,
                ),
            ]
            marker = ColumnSpec(name=relation.foreign_key, table=junction_name, label=marker_label)

        for join in joins:
            self._ensure_join(descriptor, join)

        columns = [
            ColumnSpec(
                name=attr.name,
                table=join_name,
                label=f"{relation.alias}{ColumnConstants.PREFIX_SEPARATOR}{attr.column}",
            )
            for attr in target_def.attributes.values()
        ]
        columns.append(marker)
        return columns

    @staticmethod
    def _base_columns(definition: ModelDefinition, requested: List[Any]) -> List[Any]:
        """Base columns labelled ``<table>_<column>``; the primary key is always selected."""
        base = definition.table_name
        names: List[str] = []
        passthrough: List[Any] = []
        for item in requested:
            if isinstance(item, str) and item in definition.attributes:
                names.append(item)
            elif isinstance(item, str) and item.startswith(base + ColumnConstants.QUALIFIER):
                names.append(definition.attr_for_column(item[len(base) + 1:]) or item[len(base) + 1:])
            else:
                passthrough.append(item)
        if not names:
            names = list(definition.attributes)
        elif definition.primary_key not in names:
            names.insert(0, definition.primary_key)
        labelled = [
            ColumnSpec(
                name=name,
                table=base,
                label=f"{base}{ColumnConstants.PREFIX_SEPARATOR}{definition.column_for(name)}",
            )
            for name in names
        ]
        return labelled + passthrough


# -----------------------------------------------------------------------------
# SQL compilation
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class CompiledStatement:
    """SQL text with ``%s`` placeholders and its ordered parameters."""
    text: str
    parameters: Tuple[Any, ...] = ()


def _as_sequence(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _equals(col: ColumnElement[Any], value: Any) -> ColumnElement[Any]:
    # booleans are stored as 1 / NULL; rows written elsewhere may hold 0
    if value is True:
        return col == 1
    if value is False:
        return sa.or_(col.is_(None), col == 0)
    return col.is_(None) if value is None else col == value


def _not_equals(col: ColumnElement[Any], value: Any) -> ColumnElement[Any]:
    if value is True:
        return sa.or_(col.is_(None), col != 1)
    if value is False:
        return sa.and_(col.is_not(None), col != 0)
    return col.is_not(None) if value is None else col != value


OPERATOR_REGISTRY: Dict[str, Callable[[ColumnElement[Any], Any], ColumnElement[Any]]] = {
    OperatorConstants.EQUALS: _equals,
    OperatorConstants.NE: _not_equals,
    OperatorConstants.NEQ: _not_equals,
    OperatorConstants.GT: lambda col, v: col > v,
    OperatorConstants.GTE: lambda col, v: col >= v,
    OperatorConstants.LT: lambda col, v: col < v,
    OperatorConstants.LTE: lambda col, v: col <= v,
    OperatorConstants.IN: lambda col, v: col.in_(_as_sequence(v)),
    OperatorConstants.NIN: lambda col, v: col.not_in(_as_sequence(v)),
    OperatorConstants.LIKE: lambda col, v: col.like(v),
    OperatorConstants.NULL: lambda col, v: col.is_(None) if v else col.is_not(None),
}


class _Source:
    """A named FROM element (table, alias or derived table) with attribute translation."""

    def __init__(self, name: str, selectable: FromClause, definition: Optional[ModelDefinition]):
        self.name = name
        self.selectable = selectable
        self.definition = definition

    def column(self, key: str) -> ColumnElement[Any]:
        column = self.definition.column_for(key) if self.definition is not None else key
        collection = self.selectable.c
        if column in collection:
            return collection[column]
        if isinstance(self.selectable, TableClause):
            self.selectable.append_column(sa.column(column))
            return self.selectable.c[column]
        raise ValueError(ErrorMessages.UNKNOWN_COLUMN.format(column=column, name=self.name))

    def all_columns(self) -> List[ColumnElement[Any]]:
        if self.definition is None:
            return [sa.literal_column(ColumnConstants.WILDCARD)]
        return [self.column(name) for name in self.definition.attributes]


class SQLCompiler:
    """
    Compiles canonical descriptors into MySQL statements via SQLAlchemy Core.

    :param definitions: Registered model definitions keyed by table name; used to
        translate attribute names to storage columns for every table in a query
    """

    def __init__(self, definitions: Mapping[str, ModelDefinition]):
        self.definitions = definitions
        self.dialect = mysql.dialect(paramstyle="format")

    def compile(self, descriptor: QueryDescriptor) -> CompiledStatement:
        if not descriptor.table:
            raise ValueError(ErrorMessages.MISSING_TABLE)
        statement = self.build(descriptor)
        compiled = statement.compile(dialect=self.dialect, compile_kwargs={"render_postcompile": True})
        params = compiled.params
        parameters = tuple(params[name] for name in (compiled.positiontup or ()))
        result = CompiledStatement(text=str(compiled), parameters=parameters)
        logger.debug(LoggingConstants.COMPILED_STATEMENT.format(
            query_type=descriptor.type, table=descriptor.table, text=result.text, parameters=result.parameters
        ))
        return result

    def build(self, descriptor: QueryDescriptor) -> Any:
        """SQLAlchemy expression for a descriptor."""
        base = self._source(descriptor.table)
        if descriptor.type == QueryType.SELECT:
            return self._build_select(descriptor, base)
        if descriptor.type == QueryType.INSERT:
            if not descriptor.values:
                raise ValueError(ErrorMessages.MISSING_VALUES.format(query_type=descriptor.type))
            return sa.insert(base.selectable).values(self._values(base, descriptor.values))
        sources = {base.name: base}
        if descriptor.type == QueryType.UPDATE:
            if not descriptor.values:
                raise ValueError(ErrorMessages.MISSING_VALUES.format(query_type=descriptor.type))
            statement = sa.update(base.selectable).values(self._values(base, descriptor.values))
        else:
            statement = sa.delete(base.selectable)
        if descriptor.where:
            statement = statement.where(self._where(descriptor.where, sources, base))
        return statement

    # ----- select -----
    def _build_select(self, descriptor: QueryDescriptor, base: _Source) -> Any:
        inner_joins = [join for join in descriptor.joins if not join.for_include]
        include_joins = [join for join in descriptor.joins if join.for_include]
        paginated = descriptor.limit is not None or bool(descriptor.offset)

        if include_joins and paginated:
            return self._build_paged_include_select(descriptor, base, inner_joins, include_joins)

        sources = {base.name: base}
        from_clause = self._join_all(base.selectable, descriptor.joins, sources)
        columns = self._columns(descriptor.columns, sources, base)
        counting = descriptor.columns == [ColumnConstants.COUNT_ALL]
        if descriptor.distinct and counting and base.definition is not None:
            # fan-out joins count each parent once
            columns = [sa.func.count(sa.distinct(base.column(base.definition.primary_key)))]
        statement = sa.select(*columns).select_from(from_clause)
        if descriptor.distinct and not counting:
            statement = statement.distinct()
        if descriptor.where:
            statement = statement.where(self._where(descriptor.where, sources, base))
        if descriptor.group_by:
            statement = statement.group_by(*[self._resolve(key, sources, base) for key in descriptor.group_by])
        statement = statement.order_by(*self._order(descriptor.order, sources, base))
        return self._paginate(statement, descriptor)

    def _build_paged_include_select(
        self,
        descriptor: QueryDescriptor,
        base: _Source,
        inner_joins: List[JoinSpec],
        include_joins: List[JoinSpec],
    ) -> Any:
        """Limit parent rows in a derived table, then join included relations outside it."""
        # @@ STEP 1: Page the parent rows
        inner_sources = {base.name: base}
        from_clause = self._join_all(base.selectable, inner_joins, inner_sources)
        inner = sa.select(*base.all_columns()).select_from(from_clause)
        if descriptor.distinct:
            inner = inner.distinct()
        if descriptor.where:
            inner = inner.where(self._where(descriptor.where, inner_sources, base))
        inner = inner.order_by(*self._order(descriptor.order, inner_sources, base))
        inner = self._paginate(inner, descriptor)

        # @@ STEP 2: Join the included relations to the paged parents
        derived = _Source(base.name, inner.subquery(base.name), base.definition)
        outer_sources = {derived.name: derived}
        outer_from = self._join_all(derived.selectable, include_joins, outer_sources)
        statement = sa.select(*self._columns(descriptor.columns, outer_sources, derived)).select_from(outer_from)
        order = [(key, direction) for key, direction in descriptor.order if self._is_resolvable(key, outer_sources)]
        return statement.order_by(*self._order(order, outer_sources, derived))

    @staticmethod
    def _paginate(statement: Any, descriptor: QueryDescriptor) -> Any:
        if descriptor.limit is not None:
            statement = statement.limit(descriptor.limit)
        if descriptor.offset:
            statement = statement.offset(descriptor.offset)
        return statement

    # ----- sources and joins -----
    def _source(self, table: str, alias: Optional[str] = None) -> _Source:
        definition = self.definitions.get(table)
        columns = [sa.column(column) for column in definition.columns()] if definition is not None else []
        selectable: FromClause = sa.table(table, *columns)
        if alias and alias != table:
            selectable = selectable.alias(alias)
        return _Source(alias or table, selectable, definition)

    def _join_all(self, from_clause: FromClause, joins: List[JoinSpec], sources: Dict[str, _Source]) -> FromClause:
        for join in joins:
            source = self._source(join.table, join.alias)
            sources[source.name] = source
            conditions = [
                _equals(source.column(key), self._operand(value, sources))
                for key, value in join.on.items()
            ]
            onclause = sa.and_(*conditions) if conditions else sa.true()
            if join.join_type == JoinType.RIGHT:
                from_clause = source.selectable.join(from_clause, onclause, isouter=True)
            else:
                from_clause = from_clause.join(
                    source.selectable, onclause, isouter=join.join_type == JoinType.LEFT
                )
        return from_clause

    # ----- columns -----
    def _columns(self, columns: List[Any], sources: Dict[str, _Source], base: _Source) -> List[Any]:
        if not columns:
            return base.all_columns()
        selected: List[Any] = []
        for item in columns:
            if isinstance(item, ColumnSpec):
                source = sources.get(item.table or base.name)
                if source is None:
                    raise ValueError(ErrorMessages.UNKNOWN_SOURCE.format(name=item.table))
                column = source.column(item.name)
                selected.append(column.label(item.label) if item.label else column)
            elif item == ColumnConstants.WILDCARD:
                selected.extend(base.all_columns())
            elif "(" in str(item):
                selected.append(sa.literal_column(str(item)))
            else:
                selected.append(self._resolve(str(item), sources, base))
        return selected

    def _values(self, base: _Source, values: Mapping[str, Any]) -> Dict[Any, Any]:
        return {base.column(name): value for name, value in values.items()}

    @staticmethod
    def _resolve(key: str, sources: Mapping[str, _Source], base: _Source) -> ColumnElement[Any]:
        if ColumnConstants.QUALIFIER in key:
            name, attr = key.split(ColumnConstants.QUALIFIER, 1)
            source = sources.get(name)
            if source is None:
                raise ValueError(ErrorMessages.UNKNOWN_SOURCE.format(name=name))
            return source.column(attr)
        return base.column(key)

    @staticmethod
    def _is_resolvable(key: str, sources: Mapping[str, _Source]) -> bool:
        if ColumnConstants.QUALIFIER not in key:
            return True
        return key.split(ColumnConstants.QUALIFIER, 1)[0] in sources

    def _operand(self, value: Any, sources: Mapping[str, _Source]) -> Any:
        if isinstance(value, str):
            match = _COLUMN_REF_RE.match(value)
            if match is not None:
                source = sources.get(match.group(1))
                if source is None:
                    raise ValueError(ErrorMessages.UNKNOWN_SOURCE.format(name=match.group(1)))
                return source.column(match.group(2))
        return value

    # ----- where / order -----
    def _where(self, where: Mapping[str, Any], sources: Mapping[str, _Source], base: _Source) -> ColumnElement[Any]:
        return sa.and_(*[self._condition(key, value, sources, base) for key, value in where.items()])

    def _condition(self, key: str, value: Any, sources: Mapping[str, _Source], base: _Source) -> ColumnElement[Any]:
        if key in (OperatorConstants.OR, OperatorConstants.AND):
            if isinstance(value, Mapping):
                clauses = [self._condition(k, v, sources, base) for k, v in value.items()]
            else:
                clauses = [self._where(item, sources, base) for item in value]
            return sa.or_(*clauses) if key == OperatorConstants.OR else sa.and_(*clauses)
        if key.startswith(OperatorConstants.OPERATOR_PREFIX):
            raise ValueError(ErrorMessages.UNKNOWN_OPERATOR.format(operator=key))

        column = self._resolve(key, sources, base)
        if isinstance(value, Mapping):
            clauses = []
            for operator, operand in value.items():
                handler = OPERATOR_REGISTRY.get(operator)
                if handler is None:
                    raise ValueError(ErrorMessages.UNKNOWN_OPERATOR.format(operator=operator))
                clauses.append(handler(column, self._operand(operand, sources)))
            return sa.and_(*clauses)
        if isinstance(value, (list, tuple, set, frozenset)):
            return column.in_(list(value))
        return _equals(column, self._operand(value, sources))

    def _order(
        self, order: List[Tuple[str, OrderDirection]], sources: Mapping[str, _Source], base: _Source
    ) -> List[Any]:
        clauses = []
        for key, direction in order:
            column = self._resolve(key, sources, base)
            clauses.append(column.desc() if direction == OrderDirection.DESC else column.asc())
        return clauses


__all__: List[str] = [
    "CompiledStatement",
    "ExpandedQuery",
    "OPERATOR_REGISTRY",
    "RelationExpander",
    "SQLCompiler",
    "ValueCoercer",
    "render_date",
]
