# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Relation registry: declared hasMany / belongsTo / manyToMany edges between models,
plus the bound accessors installed on model instances.

The registry is populated once at model-setup time and read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import create_model

from .constants import (
    ColumnConstants,
    ErrorMessages,
    LoggingConstants,
    OperatorConstants,
    QueryKeyConstants,
    RelationKind,
    JoinKeyConstants,
)
from .exceptions import ConfigurationError
from .mysql_orm import MySQLBaseModel, ModelDefinition, build_model_definition, mysql_field, mysql_table
from .mysql_query import as_structured
from .naming import key_for, pluralize, singularize

if TYPE_CHECKING:
    from .mysql_session import Page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationDefinition:
    """
    A declared edge between two model classes.

    :class: RelationDefinition
    :synopsis: Kind, endpoints, keys and alias of one relation
    """
    kind: RelationKind
    owner: Type[Any]
    target: Type[Any]
    foreign_key: str
    alias: str
    through: Optional[Type[Any]] = None
    through_key: Optional[str] = None

    @property
    def owner_definition(self) -> ModelDefinition:
        return build_model_definition(self.owner)

    @property
    def target_definition(self) -> ModelDefinition:
        return build_model_definition(self.target)

    @property
    def through_definition(self) -> Optional[ModelDefinition]:
        return build_model_definition(self.through) if self.through is not None else None

    @property
    def is_collection(self) -> bool:
        return self.kind != RelationKind.BELONGS_TO


def column_ref(table: str, column: str) -> str:
    """Render a ``$table.column$`` column reference understood by join ``on`` mappings."""
    delim = OperatorConstants.COLUMN_REF_DELIMITER
    return f"{delim}{table}{ColumnConstants.QUALIFIER}{column}{delim}"


def qualified(table: str, column: str) -> str:
    return f"{table}{ColumnConstants.QUALIFIER}{column}"


class RelationRegistry:
    """
    Registry of relation definitions keyed by owning model and alias.

    Inbound relations are additionally indexed on their target by foreign key, which
    lets a ``where`` predicate on the target name the foreign key directly.
    """

    def __init__(self, model_listener: Optional[Callable[[Type[Any]], None]] = None):
        self._relations: Dict[Type[Any], Dict[str, RelationDefinition]] = {}
        self._inbound: Dict[Type[Any], Dict[str, RelationDefinition]] = {}
        self._junctions: Dict[Tuple[str, str], Type[Any]] = {}
        self._finalized = False
        self._model_listener = model_listener

    # ----- lifecycle -----
    def finalize(self) -> None:
        """Freeze the registry; later declarations raise :class:`ConfigurationError`."""
        self._finalized = True

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    # ----- declarations -----
    def declare_has_many(
        self,
        owner: Type[Any],
        target: Type[Any],
        *,
        foreign_key: Optional[str] = None,
        alias: Optional[str] = None,
        through: Optional[Type[Any]] = None,
        through_key: Optional[str] = None,
        kind: RelationKind = RelationKind.HAS_MANY,
    ) -> RelationDefinition:
        """
        Declare a one-to-many edge ``owner`` -> ``target``.

        Example::

            registry.declare_has_many(User, Post, foreign_key="user_id")
            user.posts()
            post = user.posts.create({"title": "hello"})
        """
        alias = alias or pluralize(target.__name__)
        if not foreign_key:
            raise ConfigurationError(
                ErrorMessages.MISSING_FOREIGN_KEY.format(alias=alias, model_name=owner.__name__)
            )
        if through is not None and not through_key:
            target_def = build_model_definition(target)
            through_key = key_for(target.__name__, target_def.primary_key)
        relation = RelationDefinition(
            kind=kind,
            owner=owner,
            target=target,
            foreign_key=foreign_key,
            alias=alias,
            through=through,
            through_key=through_key if through is not None else None,
        )
        registered = self._register(relation)
        if registered is relation:
            self._inbound.setdefault(target, {}).setdefault(foreign_key, relation)
        return registered

    def declare_belongs_to(
        self,
        parent: Type[Any],
        child: Type[Any],
        *,
        foreign_key: Optional[str] = None,
        alias: Optional[str] = None,
    ) -> RelationDefinition:
        """
        Declare that ``child`` rows point at ``parent`` through ``foreign_key``.

        Example::

            registry.declare_belongs_to(User, Post, alias="author", foreign_key="user_id")
            post.author()
        """
        alias = alias or singularize(parent.__name__)
        if not foreign_key:
            raise ConfigurationError(
                ErrorMessages.MISSING_FOREIGN_KEY.format(alias=alias, model_name=child.__name__)
            )
        relation = RelationDefinition(
            kind=RelationKind.BELONGS_TO,
            owner=child,
            target=parent,
            foreign_key=foreign_key,
            alias=alias,
        )
        return self._register(relation)

    def declare_many_to_many(
        self,
        model_a: Type[Any],
        model_b: Type[Any],
        *,
        alias: Optional[str] = None,
        reverse_alias: Optional[str] = None,
        from_key: Optional[str] = None,
        to_key: Optional[str] = None,
        through: Optional[Type[Any]] = None,
    ) -> Tuple[RelationDefinition, RelationDefinition]:
        """
        Declare a many-to-many association routed through a junction model.

        The junction is created at most once per unordered model pair, so declaring
        from either side reuses it.

        Example::

            registry.declare_many_to_many(Post, Tag, alias="tags")
            post.tags()
            tag.posts()
        """
        def_a = build_model_definition(model_a)
        def_b = build_model_definition(model_b)
        from_key = from_key or key_for(model_a.__name__, def_a.primary_key)
        to_key = to_key or key_for(model_b.__name__, def_b.primary_key)

        if through is None:
            through = self._junction_for(model_a, model_b, from_key, to_key)

        # @@ STEP 1: Wire the junction rows to both endpoints
        alias_a = singularize(model_a.__name__)
        alias_b = singularize(model_b.__name__)
        if alias_a == alias_b:
            alias_b = f"{alias_b}{ColumnConstants.PREFIX_SEPARATOR}{to_key}"
        self.declare_belongs_to(model_a, through, alias=alias_a, foreign_key=from_key)
        self.declare_belongs_to(model_b, through, alias=alias_b, foreign_key=to_key)

        # @@ STEP 2: Wire both collection directions through the junction
        forward = self.declare_has_many(
            model_a, model_b,
            alias=alias or pluralize(model_b.__name__),
            foreign_key=from_key,
            through=through,
            through_key=to_key,
            kind=RelationKind.MANY_TO_MANY,
        )
        backward = self.declare_has_many(
            model_b, model_a,
            alias=reverse_alias or pluralize(model_a.__name__),
            foreign_key=to_key,
            through=through,
            through_key=from_key,
            kind=RelationKind.MANY_TO_MANY,
        )
        return forward, backward

    # ----- queries -----
    def lookup(self, model: Type[Any], key: str) -> Optional[RelationDefinition]:
        """Relation registered under ``key`` for ``model``: own alias first, then inbound foreign key."""
        own = self._relations.get(model, {}).get(key)
        if own is not None:
            return own
        return self._inbound.get(model, {}).get(key)

    def relations_for(self, model: Type[Any]) -> Mapping[str, RelationDefinition]:
        return dict(self._relations.get(model, {}))

    def junction(self, model_a: Type[Any], model_b: Type[Any]) -> Optional[Type[Any]]:
        return self._junctions.get(self._pair_key(model_a, model_b))

    # ----- internals -----
    def _register(self, relation: RelationDefinition) -> RelationDefinition:
        owner_name = relation.owner.__name__
        if self._finalized:
            raise ConfigurationError(
                ErrorMessages.REGISTRY_FINALIZED.format(alias=relation.alias, model_name=owner_name)
            )
        owned = self._relations.setdefault(relation.owner, {})
        existing = owned.get(relation.alias)
        if existing is not None:
            if existing == relation:
                return existing
            raise ConfigurationError(ErrorMessages.DUPLICATE_ALIAS.format(alias=relation.alias, model_name=owner_name))
        if relation.alias in relation.owner.model_fields:
            raise ConfigurationError(ErrorMessages.DUPLICATE_ALIAS.format(alias=relation.alias, model_name=owner_name))
        owned[relation.alias] = relation
        logger.debug(LoggingConstants.RELATION_DECLARED.format(
            kind=relation.kind, owner=owner_name, alias=relation.alias, target=relation.target.__name__
        ))
        return relation

    @staticmethod
    def _pair_key(model_a: Type[Any], model_b: Type[Any]) -> Tuple[str, str]:
        first, second = sorted((model_a.__name__, model_b.__name__))
        return (first, second)

    def _junction_for(self, model_a: Type[Any], model_b: Type[Any], from_key: str, to_key: str) -> Type[Any]:
        pair = self._pair_key(model_a, model_b)
        junction = self._junctions.get(pair)
        if junction is not None:
            return junction

        # @@ STEP: Name deterministically, lexicographically smaller model first
        name = f"{pair[0]}{pair[1]}"
        table = f"{pair[0]}{ColumnConstants.PREFIX_SEPARATOR}{pair[1]}".lower()
        fields: Dict[str, Any] = {
            "id": (Optional[int], mysql_field(primary_key=True)),
            from_key: (Optional[Any], mysql_field()),
        }
        fields.setdefault(to_key, (Optional[Any], mysql_field()))
        junction = mysql_table(table)(create_model(name, __base__=MySQLBaseModel, **fields))
        self._junctions[pair] = junction
        logger.debug(LoggingConstants.JUNCTION_CREATED.format(name=name, table=table))
        if self._model_listener is not None:
            self._model_listener(junction)
        return junction


# -----------------------------------------------------------------------------
# Bound accessors
# -----------------------------------------------------------------------------

class HasManyAccessor:
    """
    Collection accessor bound to one owner instance, e.g. ``user.posts``.

    Calling it runs the target's collection query restricted to this owner; ``create``
    builds an unsaved target instance with the foreign key stamped.
    """

    def __init__(self, relation: RelationDefinition, instance: Any):
        self.relation = relation
        self.instance = instance

    def query(self, query: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Structured descriptor selecting this owner's related rows."""
        relation = self.relation
        descriptor = as_structured(query or {})
        where = dict(descriptor.get(QueryKeyConstants.WHERE) or {})
        owner_pk = self.instance.primary()
        if relation.through is not None:
            through_def = relation.through_definition
            target_def = relation.target_definition
            joins = dict(descriptor.get(JoinKeyConstants.INNER_JOIN) or {})
            joins[through_def.table_name] = {
                relation.through_key: column_ref(target_def.table_name, target_def.primary_key),
            }
            descriptor[JoinKeyConstants.INNER_JOIN] = joins
            where[qualified(through_def.table_name, relation.foreign_key)] = owner_pk
        else:
            where[relation.foreign_key] = owner_pk
        descriptor[QueryKeyConstants.WHERE] = where
        return descriptor

    def __call__(self, query: Optional[Mapping[str, Any]] = None) -> "Page":
        return self.relation.target.mapper().all(self.query(query))

    def create(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Any:
        values = dict(data or {})
        values.update(kwargs)
        if self.relation.through is None:
            values[self.relation.foreign_key] = self.instance.primary()
        return self.relation.target(**values)


class BelongsToAccessor:
    """Single-result accessor bound to one child instance, e.g. ``post.author``."""

    def __init__(self, relation: RelationDefinition, instance: Any):
        self.relation = relation
        self.instance = instance

    def query(self) -> Dict[str, Any]:
        target_def = self.relation.target_definition
        return {QueryKeyConstants.WHERE: {target_def.primary_key: getattr(self.instance, self.relation.foreign_key)}}

    def __call__(self) -> Any:
        return self.relation.target.mapper().find(self.query())


def build_accessors(registry: RelationRegistry, instance: Any) -> Dict[str, Any]:
    """Accessors for every relation owned by the instance's model, keyed by alias."""
    accessors: Dict[str, Any] = {}
    for alias, relation in registry.relations_for(type(instance)).items():
        if relation.kind == RelationKind.BELONGS_TO:
            accessors[alias] = BelongsToAccessor(relation, instance)
        else:
            accessors[alias] = HasManyAccessor(relation, instance)
    return accessors


__all__: List[str] = [
    "RelationDefinition",
    "RelationRegistry",
    "HasManyAccessor",
    "BelongsToAccessor",
    "build_accessors",
    "column_ref",
    "qualified",
]
