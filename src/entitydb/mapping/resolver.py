"""
Table metadata resolution.

Resolution order for a type, first match wins:

1. an explicit `EntityMapping` held by the registry,
2. declarative markers (`@entity` with `Annotated[..., Column()/Id()/NotMapped()]`),
3. convention: lowercase class name, identity column names, ``id`` as auto key.

A type is resolved at most once per owner; `TableMetaCache` keeps the results.
"""
import logging
import re
import threading
import typing
from dataclasses import InitVar, replace
from typing import TYPE_CHECKING, Any

from entitydb.exceptions import MappingConfigurationError
from entitydb.mapping.markers import Column, Id, NotMapped, entity_info
from entitydb.mapping.meta import ColumnMeta, FieldAccessor, PrimaryKey, TableMeta

if TYPE_CHECKING:
    from entitydb.mapping.registry import EntityMapping, MappingRegistry

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake_case(name: str) -> str:
    """Insert an underscore before each inner uppercase letter and lowercase.

    Examples
        >>> to_snake_case('placedAt')
        'placed_at'
        >>> to_snake_case('user_id')
        'user_id'
    """
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def entity_fields(type_: type) -> dict[str, Any]:
    """Annotated instance fields of a type and its bases, base fields first.

    ``ClassVar`` and ``InitVar`` annotations are excluded. Values keep their
    ``Annotated`` extras.
    """
    try:
        hints = typing.get_type_hints(type_, include_extras=True)
    except NameError as err:
        raise MappingConfigurationError(
            f'Cannot evaluate annotations of {type_.__name__}: {err}') from err
    fields = {}
    for name, hint in hints.items():
        if typing.get_origin(hint) is typing.ClassVar or hint is typing.ClassVar:
            continue
        if isinstance(hint, InitVar):
            continue
        fields[name] = hint
    return fields


def _markers(hint: Any) -> tuple:
    if typing.get_origin(hint) is typing.Annotated:
        return typing.get_args(hint)[1:]
    return ()


def _first(markers: tuple, kind: type):
    for marker in markers:
        if isinstance(marker, kind) or marker is kind:
            return marker
    return None


def _from_mapping(mapping: 'EntityMapping') -> TableMeta:
    return TableMeta(
        type=mapping.type,
        table=mapping.table,
        keys=mapping.keys,
        prop_to_column=mapping.prop_to_column,
        prop_to_field=mapping.prop_to_field,
        columns=mapping.columns,
    )


def _from_markers(type_: type, table: str) -> TableMeta:
    keys: dict[str, PrimaryKey] = {}
    prop_to_column: dict[str, str] = {}
    prop_to_field: dict[str, FieldAccessor] = {}
    columns: dict[str, ColumnMeta] = {}
    auto_key = None

    for prop, hint in entity_fields(type_).items():
        markers = _markers(hint)
        if _first(markers, NotMapped) is not None:
            continue
        column: Column | None = _first(markers, Column)
        key: Id | None = _first(markers, Id)

        name = to_snake_case(prop)
        if column is not None and column.name:
            name = column.name
        if key is not None and key.name:
            name = key.name

        prop_to_column[prop] = name
        prop_to_field[prop] = FieldAccessor(prop, hint)

        if column is not None:
            meta = ColumnMeta(
                property=prop, name=name, nullable=column.nullable,
                default_value=column.default, type_override=column.type,
                precision=column.precision, scale=column.scale,
                length=column.length, ignored=column.ignore)
        else:
            meta = ColumnMeta(property=prop, name=name)

        if key is not None:
            if key.auto and auto_key is not None:
                raise MappingConfigurationError(
                    f'{type_.__name__}: second auto primary key {prop!r} '
                    f'(already declared on {auto_key!r})')
            if key.auto:
                auto_key = prop
            keys[prop] = PrimaryKey(prop, name, key.auto)
            meta = replace(meta, nullable=False)

        columns[prop] = meta

    return TableMeta(type_, table, keys, prop_to_column, prop_to_field, columns)


def _from_convention(type_: type) -> TableMeta:
    keys: dict[str, PrimaryKey] = {}
    prop_to_column: dict[str, str] = {}
    prop_to_field: dict[str, FieldAccessor] = {}
    columns: dict[str, ColumnMeta] = {}

    for prop, hint in entity_fields(type_).items():
        prop_to_column[prop] = prop
        prop_to_field[prop] = FieldAccessor(prop, hint)
        columns[prop] = ColumnMeta(property=prop, name=prop, nullable=prop != 'id')
        if prop == 'id':
            keys[prop] = PrimaryKey(prop, prop, True)

    return TableMeta(type_, type_.__name__.lower(), keys, prop_to_column,
                     prop_to_field, columns)


def resolve_table_meta(type_: type, registry: 'MappingRegistry | None' = None) -> TableMeta:
    """Resolve the canonical table metadata for a type.

    Args:
        type_: Entity or DTO class
        registry: Explicit mappings, consulted first

    Returns
        TableMeta for the type

    Raises
        MappingConfigurationError: On an unresolvable property or a second auto key
    """
    if registry is not None:
        mapping = registry.find(type_)
        if mapping is not None:
            logger.debug(f'Resolved {type_.__name__} from explicit mapping')
            return _from_mapping(mapping)

    info = entity_info(type_)
    if info is not None:
        logger.debug(f'Resolved {type_.__name__} from declarative markers')
        return _from_markers(type_, info.table or type_.__name__.lower())

    logger.debug(f'Resolved {type_.__name__} by convention')
    return _from_convention(type_)


class TableMetaCache:
    """Append-only TableMeta store for one mapping owner.

    Each type is resolved at most once; later lookups return the same object.
    """

    def __init__(self, registry: 'MappingRegistry | None' = None):
        self.registry = registry
        self._metas: dict[type, TableMeta] = {}
        self._lock = threading.RLock()

    def get(self, type_: type) -> TableMeta:
        meta = self._metas.get(type_)
        if meta is not None:
            return meta
        with self._lock:
            meta = self._metas.get(type_)
            if meta is None:
                meta = resolve_table_meta(type_, self.registry)
                self._metas[type_] = meta
            return meta

    def __contains__(self, type_: type) -> bool:
        return type_ in self._metas
