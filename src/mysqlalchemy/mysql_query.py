# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Canonical query descriptor and the normalizer that produces it from loosely-shaped
query mappings.

A raw query is one of two variants, resolved once:

- :class:`ShorthandQuery`: bare attribute keys meaning equality, e.g. ``{"name": "alex"}``
- :class:`StructuredQuery`: explicit ``where`` and/or ``*Join`` keys
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .constants import (
    ErrorMessages,
    JoinKeyConstants,
    JoinType,
    LoggingConstants,
    OrderDirection,
    PaginationConstants,
    QueryKeyConstants,
    QueryType,
)
from .mysql_orm import is_numeric_string, to_number

if TYPE_CHECKING:
    from .settings import MapperOptions

logger = logging.getLogger(__name__)

_JOIN_KEYS: Dict[str, JoinType] = dict(JoinKeyConstants.JOIN_TYPES)


@dataclass
class JoinSpec:
    """
    One join of a query.

    ``on`` maps a column of the joined table to either a ``$table.column$`` reference
    or a bound value. Joins added for ``include`` directives are flagged so the compiler
    can paginate parent rows before applying them.
    """
    join_type: JoinType
    table: str
    on: Dict[str, Any] = field(default_factory=dict)
    alias: Optional[str] = None
    for_include: bool = False

    @property
    def name(self) -> str:
        return self.alias or self.table


@dataclass(frozen=True)
class ColumnSpec:
    """A selected column: ``table.name AS label``."""
    name: str
    table: Optional[str] = None
    label: Optional[str] = None


@dataclass
class QueryDescriptor:
    """Canonical, structurally uniform query ready for relation expansion and compilation."""
    type: QueryType = QueryType.SELECT
    table: Optional[str] = None
    columns: List[Union[str, ColumnSpec]] = field(default_factory=list)
    where: Dict[str, Any] = field(default_factory=dict)
    joins: List[JoinSpec] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    order: List[Tuple[str, OrderDirection]] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    offset: Optional[int] = None
    limit: Optional[int] = None
    include: List[str] = field(default_factory=list)
    distinct: bool = False

    def copy(self, **kwargs: Any) -> "QueryDescriptor":
        """Create a copy with updated fields; containers are copied, never shared."""
        new_desc = copy.copy(self)
        new_desc.columns = list(self.columns)
        new_desc.where = dict(self.where)
        new_desc.joins = [copy.copy(join) for join in self.joins]
        new_desc.values = dict(self.values)
        new_desc.order = list(self.order)
        new_desc.group_by = list(self.group_by)
        new_desc.include = list(self.include)
        for key, value in kwargs.items():
            if not hasattr(new_desc, key):
                raise ValueError(f"Cannot update non-existent field '{key}' in QueryDescriptor")
            setattr(new_desc, key, value)
        return new_desc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -----------------------------------------------------------------------------
# Raw query variants
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ShorthandQuery:
    """Query whose non-reserved keys are implicit equality predicates."""
    data: Mapping[str, Any]


@dataclass(frozen=True)
class StructuredQuery:
    """Query that already names its ``where`` and joins explicitly."""
    data: Mapping[str, Any]


RawQuery = Union[ShorthandQuery, StructuredQuery]


def is_structured_key(key: str) -> bool:
    return key == QueryKeyConstants.WHERE or key in _JOIN_KEYS or key.endswith(QueryKeyConstants.JOIN_SUFFIX)


def classify(raw: Mapping[str, Any]) -> RawQuery:
    """Resolve a raw mapping into one of the two query variants."""
    if any(is_structured_key(key) for key in raw):
        return StructuredQuery(raw)
    return ShorthandQuery(raw)


def as_structured(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``raw`` in structured form: shorthand predicates are moved under ``where``."""
    variant = classify(raw)
    data = dict(variant.data)
    if isinstance(variant, ShorthandQuery):
        where = {key: data.pop(key) for key in list(data) if key not in QueryKeyConstants.RESERVED_KEYS}
        data[QueryKeyConstants.WHERE] = where
    else:
        data[QueryKeyConstants.WHERE] = dict(data.get(QueryKeyConstants.WHERE) or {})
    return data


# -----------------------------------------------------------------------------
# Parsing helpers
# -----------------------------------------------------------------------------

def parse_order(value: Any) -> List[Tuple[str, OrderDirection]]:
    """
    Parse an ordering specification.

    Accepts ``"name"``, ``"-name"``, ``"name desc"``, comma-separated strings, lists of
    those or of ``(name, direction)`` tuples, and ``{name: "asc"|"desc"|1|-1}`` mappings.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [_parse_order_term(term) for term in value.split(",") if term.strip()]
    if isinstance(value, Mapping):
        return [(str(name), _parse_direction(direction, value)) for name, direction in value.items()]
    if isinstance(value, (list, tuple)):
        order: List[Tuple[str, OrderDirection]] = []
        for item in value:
            if isinstance(item, str):
                order.extend(parse_order(item))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                order.append((str(item[0]), _parse_direction(item[1], value)))
            else:
                raise ValueError(ErrorMessages.INVALID_ORDER.format(value=item))
        return order
    raise ValueError(ErrorMessages.INVALID_ORDER.format(value=value))


def _parse_order_term(term: str) -> Tuple[str, OrderDirection]:
    term = term.strip()
    if term.startswith("-"):
        return (term[1:], OrderDirection.DESC)
    parts = term.split()
    if len(parts) == 2:
        return (parts[0], _parse_direction(parts[1], term))
    if len(parts) == 1:
        return (parts[0], OrderDirection.ASC)
    raise ValueError(ErrorMessages.INVALID_ORDER.format(value=term))


def _parse_direction(direction: Any, context: Any) -> OrderDirection:
    if isinstance(direction, OrderDirection):
        return direction
    if isinstance(direction, bool):
        raise ValueError(ErrorMessages.INVALID_ORDER.format(value=context))
    if isinstance(direction, int):
        return OrderDirection.DESC if direction < 0 else OrderDirection.ASC
    if isinstance(direction, str) and direction.lower() in (OrderDirection.ASC, OrderDirection.DESC):
        return OrderDirection(direction.lower())
    raise ValueError(ErrorMessages.INVALID_ORDER.format(value=context))


def parse_include(value: Any) -> List[str]:
    """Include directives: comma-delimited string or sequence of aliases."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Sequence[Any] = value.split(QueryKeyConstants.INCLUDE_SEPARATOR)
    else:
        items = value
    seen: List[str] = []
    for item in items:
        alias = str(item).strip()
        if alias and alias not in seen:
            seen.append(alias)
    return seen


def parse_joins(data: Mapping[str, Any]) -> List[JoinSpec]:
    joins: List[JoinSpec] = []
    for key, value in data.items():
        join_type = _JOIN_KEYS.get(key)
        if join_type is None or value is None:
            continue
        if isinstance(value, JoinSpec):
            joins.append(value)
            continue
        if not isinstance(value, Mapping):
            raise ValueError(ErrorMessages.INVALID_JOIN.format(table=key))
        for table, on in value.items():
            if isinstance(on, JoinSpec):
                joins.append(on)
                continue
            if not isinstance(on, Mapping):
                raise ValueError(ErrorMessages.INVALID_JOIN.format(table=table))
            joins.append(JoinSpec(join_type=join_type, table=str(table), on=dict(on)))
    return joins


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _as_int(key: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(ErrorMessages.INVALID_PAGINATION.format(key=key, value=value))
    if is_numeric_string(value):
        value = to_number(value)
    if isinstance(value, (int, float)) and int(value) == value:
        return int(value)
    raise ValueError(ErrorMessages.INVALID_PAGINATION.format(key=key, value=value))


# -----------------------------------------------------------------------------
# Normalizer
# -----------------------------------------------------------------------------

class QueryNormalizer:
    """
    Turns shorthand or structured query mappings into a canonical :class:`QueryDescriptor`.

    Steps, in order:

    1. classify the mapping as shorthand or structured
    2. coerce numeric-looking top-level strings to numbers
    3. move shorthand predicates under ``where``
    4. rename ``sort`` to ``order``
    5. apply pagination defaults, ``page``/``pageSize`` and the limit ceiling
    """

    def __init__(self, options: "MapperOptions"):
        self.options = options

    def normalize(
        self,
        raw: Union[Mapping[str, Any], QueryDescriptor, None],
        *,
        table: Optional[str] = None,
        query_type: QueryType = QueryType.SELECT,
    ) -> QueryDescriptor:
        if raw is None:
            raw = {}
        if isinstance(raw, QueryDescriptor):
            descriptor = raw.copy()
            if descriptor.table is None:
                descriptor.table = table
            if descriptor.type == QueryType.SELECT:
                descriptor.offset, descriptor.limit = self.paginate(
                    limit=descriptor.limit, offset=descriptor.offset
                )
            return descriptor
        if not isinstance(raw, Mapping):
            raise ValueError(ErrorMessages.INVALID_DESCRIPTOR.format(type_name=type(raw).__name__))

        # @@ STEP 1: Classify once, then coerce numeric-looking top-level strings
        variant = classify(raw)
        data: Dict[str, Any] = {
            key: (to_number(value) if is_numeric_string(value) else value)
            for key, value in variant.data.items()
        }

        # @@ STEP 2: Shorthand keys become equality predicates
        if isinstance(variant, ShorthandQuery):
            where = {key: data.pop(key) for key in list(data) if key not in QueryKeyConstants.RESERVED_KEYS}
        else:
            where = dict(data.pop(QueryKeyConstants.WHERE, None) or {})

        # @@ STEP 3: ``sort`` is an alias of ``order``
        if QueryKeyConstants.SORT in data:
            sort = data.pop(QueryKeyConstants.SORT)
            data.setdefault(QueryKeyConstants.ORDER, sort)

        kind = data.pop(QueryKeyConstants.TYPE, None) or query_type
        try:
            kind = QueryType(kind)
        except ValueError:
            raise ValueError(ErrorMessages.INVALID_QUERY_TYPE.format(value=kind)) from None

        descriptor = QueryDescriptor(
            type=kind,
            table=data.pop(QueryKeyConstants.TABLE, None) or table,
            columns=_as_list(data.pop(QueryKeyConstants.COLUMNS, None)),
            where=where,
            joins=parse_joins(data),
            values=dict(data.pop(QueryKeyConstants.VALUES, None) or {}),
            order=parse_order(data.pop(QueryKeyConstants.ORDER, None)),
            group_by=_as_list(data.pop(QueryKeyConstants.GROUP_BY, None)),
            include=parse_include(data.pop(QueryKeyConstants.INCLUDE, None)),
        )

        # @@ STEP 4: Pagination (select only)
        limit = data.pop(QueryKeyConstants.LIMIT, None)
        offset = data.pop(QueryKeyConstants.OFFSET, None)
        page = data.pop(QueryKeyConstants.PAGE, None)
        page_size = data.pop(QueryKeyConstants.PAGE_SIZE, None)
        if descriptor.type == QueryType.SELECT:
            descriptor.offset, descriptor.limit = self.paginate(
                limit=limit, offset=offset, page=page, page_size=page_size
            )

        leftover = [key for key in data if not is_structured_key(key)]
        if leftover:
            logger.warning(LoggingConstants.IGNORED_KEYS.format(table=descriptor.table, keys=leftover))

        logger.debug(LoggingConstants.NORMALIZED_QUERY.format(
            variant=type(variant).__name__, table=descriptor.table, descriptor=descriptor
        ))
        return descriptor

    def paginate(
        self,
        *,
        limit: Any = None,
        offset: Any = None,
        page: Any = None,
        page_size: Any = None,
    ) -> Tuple[int, int]:
        """Resolve ``(offset, limit)`` from raw pagination inputs."""
        limit_value = _as_int(QueryKeyConstants.LIMIT, limit)
        page_size_value = _as_int(QueryKeyConstants.PAGE_SIZE, page_size)
        if page_size_value:
            limit_value = page_size_value
        if not limit_value or limit_value < 0:
            limit_value = self.options.default_limit
        if limit_value > self.options.max_limit:
            limit_value = self.options.max_limit

        offset_value = _as_int(QueryKeyConstants.OFFSET, offset) or PaginationConstants.DEFAULT_OFFSET
        page_value = _as_int(QueryKeyConstants.PAGE, page)
        if page_value:
            offset_value = page_value * limit_value
        if offset_value < 0:
            raise ValueError(ErrorMessages.INVALID_PAGINATION.format(key=QueryKeyConstants.OFFSET, value=offset))
        return offset_value, limit_value
