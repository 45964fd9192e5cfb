# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Turns flat result rows into model instances and groups included relation rows
under their parents.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from .constants import AttributeType, ColumnConstants, ErrorMessages, LoggingConstants
from .exceptions import NotFoundError
from .mysql_orm import ModelDefinition
from .mysql_relations import RelationDefinition

logger = logging.getLogger(__name__)


class ResultHydrator:
    """
    Builds instances of one model from result rows.

    Row keys may carry a ``<table>_`` or ``<alias>_`` label prefix; it is stripped
    whenever the remainder is a known storage column of the model.
    """

    def __init__(self, model: Type[Any]):
        self.model = model
        self.definition: ModelDefinition = model.definition()

    def values_from_row(self, row: Mapping[str, Any], prefix: Optional[str] = None) -> Dict[str, Any]:
        """Attribute values of the model found in ``row``."""
        definition = self.definition
        values: Dict[str, Any] = {}
        if prefix:
            label_prefix = f"{prefix}{ColumnConstants.PREFIX_SEPARATOR}"
            for key, raw in row.items():
                if key.startswith(label_prefix):
                    self._assign(values, definition.attr_for_column(key[len(label_prefix):]), raw)
            return values

        # bare columns win over table-prefixed labels of the same column
        table_prefix = f"{definition.table_name}{ColumnConstants.PREFIX_SEPARATOR}"
        prefixed: Dict[str, Any] = {}
        for key, raw in row.items():
            attr_name = definition.attr_for_column(key)
            if attr_name is not None:
                self._assign(values, attr_name, raw)
            elif key.startswith(table_prefix):
                self._assign(prefixed, definition.attr_for_column(key[len(table_prefix):]), raw)
        for attr_name, value in prefixed.items():
            values.setdefault(attr_name, value)
        return values

    def _assign(self, values: Dict[str, Any], attr_name: Optional[str], raw: Any) -> None:
        if attr_name is not None:
            values[attr_name] = self._coerce(attr_name, raw)

    def _coerce(self, attr_name: str, raw: Any) -> Any:
        attr = self.definition.attributes[attr_name]
        if attr.attr_type == AttributeType.BOOLEAN:
            # NULL is the stored form of False
            return bool(raw)
        if raw is None:
            return None
        if attr.attr_type == AttributeType.JSON and isinstance(raw, (str, bytes)):
            try:
                return json.loads(raw)
            except ValueError:
                return raw
        return raw

    def build(self, values: Mapping[str, Any]) -> Any:
        return self.model.model_validate(dict(values))

    def hydrate(self, rows: Iterable[Mapping[str, Any]], prefix: Optional[str] = None) -> List[Any]:
        return [self.build(self.values_from_row(row, prefix)) for row in rows]

    def hydrate_one(self, rows: List[Mapping[str, Any]], query: Any = None) -> Any:
        """First hydrated row; :class:`NotFoundError` when there is none."""
        if not rows:
            raise NotFoundError(ErrorMessages.NOT_FOUND.format(query=query), query=query)
        return self.build(self.values_from_row(rows[0]))


class RelationAssembler:
    """
    Folds outer-joined rows into parents with their included relations.

    Parents are de-duplicated by primary key in first-seen order. Related rows are
    matched to a parent through the ``<alias>__fk`` marker column, de-duplicated by
    their own primary key, and rows whose related primary key is NULL are skipped.
    """

    def __init__(self, model: Type[Any], included: Mapping[str, RelationDefinition]):
        self.model = model
        self.included = included
        self.hydrator = ResultHydrator(model)
        self.related_hydrators = {
            alias: ResultHydrator(relation.target) for alias, relation in included.items()
        }

    def assemble(self, rows: Iterable[Mapping[str, Any]]) -> List[Any]:
        definition = self.hydrator.definition
        prefix = definition.table_name
        parents: Dict[Any, Dict[str, Any]] = {}
        related: Dict[Any, Dict[str, Dict[Any, Any]]] = {}
        row_count = 0

        # @@ STEP 1: Collect parent values and related instances per parent key
        for row in rows:
            row_count += 1
            values = self.hydrator.values_from_row(row, prefix)
            parent_key = values.get(definition.primary_key)
            if parent_key not in parents:
                parents[parent_key] = values
                related[parent_key] = {alias: {} for alias in self.included}
            for alias, hydrator in self.related_hydrators.items():
                marker = row.get(f"{alias}{ColumnConstants.FOREIGN_KEY_MARKER}")
                if marker is None or marker != parent_key:
                    continue
                child_values = hydrator.values_from_row(row, alias)
                child_key = child_values.get(hydrator.definition.primary_key)
                if child_key is None:
                    continue
                bucket = related[parent_key][alias]
                if child_key not in bucket:
                    bucket[child_key] = hydrator.build(child_values)

        # @@ STEP 2: Build parents and attach their relations
        instances: List[Any] = []
        for parent_key, values in parents.items():
            instance = self.hydrator.build(values)
            instance.attach_included({
                alias: list(bucket.values()) for alias, bucket in related[parent_key].items()
            })
            instances.append(instance)

        logger.debug(LoggingConstants.ASSEMBLED_ROWS.format(
            rows=row_count, parents=len(instances), model_name=definition.name
        ))
        return instances


__all__: List[str] = ["RelationAssembler", "ResultHydrator"]
