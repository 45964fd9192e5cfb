# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Model declaration for MySQLAlchemy: field metadata, the table decorator, the
immutable model definition derived from a declared class, and the pydantic base
model whose post-construction hook wires relation accessors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime
import decimal
import json
import logging
import re
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationInfo, field_validator
from pydantic.fields import FieldInfo

from .constants import (
    AttributeType,
    DateFormatConstants,
    DateStorage,
    ErrorMessages,
    ModelMetadataConstants,
    NamingConstants,
    NumericConstants,
)
from .exceptions import ConfigurationError
from .naming import singularize

if TYPE_CHECKING:
    from .mysql_session import ModelMapper

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelType = TypeVar("ModelType", bound="MySQLBaseModel")

Formatter = Callable[[Any, Type[Any]], Any]

_NUMERIC_RE = re.compile(NumericConstants.NUMERIC_PATTERN)


class _Undefined:
    """Marks a value that must be left out of a statement (as opposed to NULL)."""

    _instance: Optional["_Undefined"] = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


# -----------------------------------------------------------------------------
# Field metadata
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class MySQLFieldMetadata:
    """
    Metadata attached to a pydantic field by :func:`mysql_field`.

    :class: MySQLFieldMetadata
    :synopsis: Storage-level description of a model attribute
    """
    attr_type: Optional[AttributeType] = None
    column_name: Optional[str] = None
    formatter: Optional[Formatter] = None
    date_storage: DateStorage = DateStorage.INTEGER
    primary_key: bool = False


def mysql_field(
    default: Any = None,
    *,
    attr_type: Optional[Union[AttributeType, str]] = None,
    column_name: Optional[str] = None,
    formatter: Optional[Formatter] = None,
    date_storage: Union[DateStorage, str] = DateStorage.INTEGER,
    primary_key: bool = False,
    default_factory: Optional[Callable[[], Any]] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Any:
    """
    Create a Pydantic Field with attached MySQL metadata.

    Args:
        default: Default value for the field
        attr_type: Semantic type; inferred from the annotation when omitted
        column_name: Storage column name when it differs from the attribute name
        formatter: ``formatter(value, model_class)`` rendering values for insert/update
        date_storage: Column representation for date attributes
        primary_key: Whether this attribute is the primary key
        default_factory: Python-side default factory function
    """
    metadata = MySQLFieldMetadata(
        attr_type=AttributeType(attr_type) if attr_type is not None else None,
        column_name=column_name,
        formatter=formatter,
        date_storage=DateStorage(date_storage),
        primary_key=primary_key,
    )
    field_kwargs: Dict[str, Any] = {
        "json_schema_extra": {ModelMetadataConstants.MYSQL_FIELD_METADATA: metadata},
        "title": title,
        "description": description,
    }
    if default_factory is not None:
        return Field(default_factory=default_factory, **field_kwargs)
    return Field(default=default, **field_kwargs)


def _field_metadata(field_info: FieldInfo) -> Optional[MySQLFieldMetadata]:
    extra = field_info.json_schema_extra
    if isinstance(extra, dict):
        meta = extra.get(ModelMetadataConstants.MYSQL_FIELD_METADATA)
        if isinstance(meta, MySQLFieldMetadata):
            return meta
    return None


def _infer_attr_type(annotation: Any) -> AttributeType:
    """Infer a semantic type from a field annotation, unwrapping Optional."""
    origin = get_origin(annotation)
    if origin is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return _infer_attr_type(args[0])
        return AttributeType.STRING
    if origin in (dict, list, Dict, List):
        return AttributeType.JSON
    if annotation is bool:
        return AttributeType.BOOLEAN
    if isinstance(annotation, type):
        if issubclass(annotation, (datetime.datetime, datetime.date)):
            return AttributeType.DATE
        if issubclass(annotation, (int, float, decimal.Decimal)):
            return AttributeType.NUMBER
        if issubclass(annotation, (dict, list)):
            return AttributeType.JSON
    return AttributeType.STRING


# -----------------------------------------------------------------------------
# Model definition
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AttributeDefinition:
    """Resolved description of one model attribute."""
    name: str
    attr_type: AttributeType
    column_name: Optional[str] = None
    formatter: Optional[Formatter] = None
    date_storage: DateStorage = DateStorage.INTEGER

    @property
    def column(self) -> str:
        """Storage column for this attribute."""
        return self.column_name or self.name


@dataclass(frozen=True)
class ModelDefinition:
    """
    Immutable table-level view of a declared model class.

    :class: ModelDefinition
    :synopsis: Table name, primary key and ordered attribute table of a model
    """
    model_class: Type[Any]
    name: str
    table_name: str
    primary_key: str
    attributes: Mapping[str, AttributeDefinition] = field(default_factory=dict)
    _column_to_attr: Mapping[str, str] = field(default_factory=dict, repr=False)

    @property
    def primary_key_column(self) -> str:
        return self.attributes[self.primary_key].column

    def column_for(self, attr_name: str) -> str:
        """Storage column of an attribute; unknown names pass through unchanged."""
        attr = self.attributes.get(attr_name)
        return attr.column if attr is not None else attr_name

    def attr_for_column(self, column: str) -> Optional[str]:
        """Attribute name stored in ``column``, if any."""
        return self._column_to_attr.get(column)

    def columns(self) -> List[str]:
        return [attr.column for attr in self.attributes.values()]


def build_model_definition(model_class: Type[Any]) -> ModelDefinition:
    """Build (and cache on the class) the :class:`ModelDefinition` of a table model."""
    cached = model_class.__dict__.get(ModelMetadataConstants.DEFINITION_CACHE_ATTR)
    if cached is not None:
        return cached

    if not model_class.__dict__.get(ModelMetadataConstants.IS_TABLE_ATTR, False):
        raise ConfigurationError(ErrorMessages.NOT_A_TABLE_MODEL.format(model_name=model_class.__name__))

    # @@ STEP 1: Resolve attributes in declaration order
    attributes: Dict[str, AttributeDefinition] = {}
    primary_keys: List[str] = []
    column_to_attr: Dict[str, str] = {}
    for field_name, field_info in model_class.model_fields.items():
        meta = _field_metadata(field_info)
        attr_type = meta.attr_type if meta and meta.attr_type else _infer_attr_type(field_info.annotation)
        attr = AttributeDefinition(
            name=field_name,
            attr_type=attr_type,
            column_name=meta.column_name if meta else None,
            formatter=meta.formatter if meta else None,
            date_storage=meta.date_storage if meta else DateStorage.INTEGER,
        )
        if attr.column in column_to_attr:
            raise ConfigurationError(
                ErrorMessages.DUPLICATE_COLUMN.format(model_name=model_class.__name__, column=attr.column)
            )
        column_to_attr[attr.column] = field_name
        attributes[field_name] = attr
        if meta and meta.primary_key:
            primary_keys.append(field_name)

    # @@ STEP 2: Resolve the primary key, falling back to an ``id`` attribute
    if len(primary_keys) > 1:
        raise ConfigurationError(ErrorMessages.DUPLICATE_PRIMARY_KEY.format(model_name=model_class.__name__))
    if primary_keys:
        primary_key = primary_keys[0]
    elif NamingConstants.DEFAULT_PRIMARY_KEY in attributes:
        primary_key = NamingConstants.DEFAULT_PRIMARY_KEY
    else:
        raise ConfigurationError(ErrorMessages.MISSING_PRIMARY_KEY.format(model_name=model_class.__name__))

    definition = ModelDefinition(
        model_class=model_class,
        name=model_class.__name__,
        table_name=model_class.__dict__[ModelMetadataConstants.TABLE_NAME_ATTR],
        primary_key=primary_key,
        attributes=MappingProxyType(attributes),
        _column_to_attr=MappingProxyType(column_to_attr),
    )
    setattr(model_class, ModelMetadataConstants.DEFINITION_CACHE_ATTR, definition)
    return definition


# -----------------------------------------------------------------------------
# Decorator
# -----------------------------------------------------------------------------

def mysql_table(name: Optional[str] = None) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator to mark a model class as stored in a MySQL table.

    The table name defaults to the singular lowercase class name.
    """

    def decorator(cls: Type[T]) -> Type[T]:
        table_name = name if name is not None else singularize(cls.__name__)
        setattr(cls, ModelMetadataConstants.TABLE_NAME_ATTR, table_name)
        setattr(cls, ModelMetadataConstants.IS_TABLE_ATTR, True)
        return cls

    return decorator


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------

def is_numeric_string(value: Any) -> bool:
    """Exact-match test for numeric-looking strings such as ``'42'`` or ``'-1.5'``."""
    return isinstance(value, str) and _NUMERIC_RE.fullmatch(value) is not None


def to_number(value: str) -> Union[int, float]:
    return float(value) if "." in value else int(value)


def parse_stored_date(value: Any) -> Any:
    """Turn epoch seconds or an ISO-8601 / timestamp string into a datetime."""
    if value is None or isinstance(value, (datetime.datetime, datetime.date)):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, decimal.Decimal)):
        return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc)
    if isinstance(value, str):
        if is_numeric_string(value):
            return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc)
        text = value.strip()
        if text.endswith(DateFormatConstants.ISO_UTC_SUFFIX):
            text = text[:-1] + DateFormatConstants.ISO_UTC_OFFSET
        try:
            return datetime.datetime.fromisoformat(text)
        except ValueError:
            return value
    return value


# -----------------------------------------------------------------------------
# Base model
# -----------------------------------------------------------------------------

class MySQLBaseModel(BaseModel):
    """Base model for all MySQL-backed entities."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True, validate_assignment=True, extra="ignore"
    )

    __mysql_mapper__: ClassVar[Optional["ModelMapper"]] = None

    _changed: Set[str] = PrivateAttr(default_factory=set)
    _accessors: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _included: Mapping[str, List[Any]] = PrivateAttr(default_factory=dict)

    @field_validator("*", mode="before")
    @classmethod
    def _format_date_attrs(cls, value: Any, info: ValidationInfo) -> Any:
        """Coerce stored date representations for date-typed attributes."""
        if not cls.__dict__.get(ModelMetadataConstants.IS_TABLE_ATTR, False) or info.field_name is None:
            return value
        attr = build_model_definition(cls).attributes.get(info.field_name)
        if attr is not None and attr.attr_type == AttributeType.DATE:
            return parse_stored_date(value)
        if attr is not None and attr.attr_type == AttributeType.JSON and isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                return value
        return value

    def model_post_init(self, context: Any, /) -> None:
        """
        Post-construction hook, invoked once per instance.

        Runs in fixed order: reset change tracking, then install relation accessors
        from the bound mapper.
        """
        self._changed = set()
        mapper = type(self).__mysql_mapper__
        if mapper is not None:
            self._accessors = mapper.relation_accessors(self)

    def __setattr__(self, name: str, value: Any) -> None:
        super().__setattr__(name, value)
        if name in type(self).model_fields:
            self._changed.add(name)

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.__dict__.get(self.definition().primary_key)))

    def __eq__(self, other: object) -> bool:
        """Instances are equal when they are of the same model and hold the same attribute values."""
        if type(other) is not type(self):
            return False
        return self.__dict__ == other.__dict__

    def __getattr__(self, name: str) -> Any:
        try:
            private = object.__getattribute__(self, "__pydantic_private__")
        except AttributeError:
            private = None
        if private:
            accessors = private.get("_accessors")
            if accessors and name in accessors:
                return accessors[name]
        return super().__getattr__(name)

    # ----- definition helpers -----
    @classmethod
    def definition(cls) -> ModelDefinition:
        return build_model_definition(cls)

    @classmethod
    def mapper(cls) -> "ModelMapper":
        mapper = cls.__mysql_mapper__
        if mapper is None:
            raise ConfigurationError(ErrorMessages.MODEL_NOT_REGISTERED.format(model_name=cls.__name__))
        return mapper

    def primary(self) -> Any:
        """Primary key value of this instance."""
        return getattr(self, self.definition().primary_key)

    def changed(self) -> Dict[str, Any]:
        """Attributes assigned since construction or the last save."""
        return {name: getattr(self, name) for name in type(self).model_fields if name in self._changed}

    def mark_clean(self) -> None:
        self._changed = set()

    def is_new(self) -> bool:
        return self.primary() is None

    @property
    def included(self) -> Mapping[str, List[Any]]:
        """Related instances gathered by an ``include`` query, keyed by relation alias."""
        return self._included

    def attach_included(self, included: Dict[str, List[Any]]) -> None:
        self._included = MappingProxyType(included)

    def storage_values(self) -> Dict[str, Any]:
        """
        Attribute values to persist: explicitly set attributes plus non-None defaults.

        Unset attributes holding ``None`` (e.g. a not-yet-assigned primary key) are left
        out so the statement omits them.
        """
        values: Dict[str, Any] = {}
        fields_set = self.model_fields_set
        for name in type(self).model_fields:
            value = getattr(self, name)
            if name in fields_set or value is not None:
                values[name] = value
        return values

    # ----- persistence shortcuts -----
    def save(self) -> Dict[str, Any]:
        """Insert when the instance has no primary key, otherwise update changed attributes."""
        mapper = self.mapper()
        if self.is_new():
            return mapper.persist(self)
        return mapper.apply_update(self)

    def remove(self) -> None:
        self.mapper().remove(self)
