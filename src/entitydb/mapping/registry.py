"""
Fluent (explicit) entity registration.

    class AppContext(DbContext):
        def on_model_creating(self, model):
            (model.entity(User)
                .to_table('users')
                .has_id('id')
                .map('name', nullable=False, length=100)
                .map('status')
                .done())
"""
import logging
import threading
from dataclasses import replace
from typing import Any

from entitydb.exceptions import MappingConfigurationError
from entitydb.mapping.meta import ColumnMeta, FieldAccessor, PrimaryKey
from entitydb.mapping.resolver import entity_fields

logger = logging.getLogger(__name__)


class EntityMapping:
    """Author-supplied mapping for one type.

    Every property named in ``prop_to_column`` must be an annotated field of
    ``type``; otherwise the mapping is rejected at construction.
    """

    def __init__(self, type_: type, table: str, keys: dict[str, PrimaryKey],
                 prop_to_column: dict[str, str], columns: dict[str, ColumnMeta]):
        self.type = type_
        self.table = table
        self.keys = dict(keys)
        self.prop_to_column = dict(prop_to_column)
        self.columns = dict(columns)

        fields = entity_fields(type_)
        accessors = {}
        for prop in self.prop_to_column:
            if prop not in fields:
                raise MappingConfigurationError(f'No field {prop!r} on {type_.__name__}')
            accessors[prop] = FieldAccessor(prop, fields[prop])
        self.prop_to_field = accessors

        for prop in (*self.keys, *self.columns):
            if prop not in self.prop_to_column:
                raise MappingConfigurationError(
                    f'{type_.__name__}.{prop} is declared as key or column but not mapped')

        autos = [k.property for k in self.keys.values() if k.auto]
        if len(autos) > 1:
            raise MappingConfigurationError(
                f'{type_.__name__}: only one auto primary key is allowed, got {autos}')


class MappingRegistry:
    """Explicit mappings keyed by entity type."""

    def __init__(self):
        self._mappings: dict[type, EntityMapping] = {}
        self._lock = threading.RLock()

    def register(self, mapping: EntityMapping) -> None:
        with self._lock:
            if mapping.type in self._mappings:
                logger.debug(f'Replacing mapping for {mapping.type.__name__}')
            self._mappings[mapping.type] = mapping

    def find(self, type_: type) -> EntityMapping | None:
        return self._mappings.get(type_)

    def __contains__(self, type_: type) -> bool:
        return type_ in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)


class EntityTypeBuilder:
    """Fluent builder for one `EntityMapping`."""

    def __init__(self, registry: MappingRegistry, type_: type):
        self._registry = registry
        self._type = type_
        self._table = type_.__name__.lower()
        self._keys: dict[str, PrimaryKey] = {}
        self._prop_to_column: dict[str, str] = {}
        self._columns: dict[str, ColumnMeta] = {}

    def to_table(self, table: str) -> 'EntityTypeBuilder':
        self._table = table
        return self

    def has_id(self, prop: str, column: str | None = None, auto: bool = True) -> 'EntityTypeBuilder':
        """Declare a primary-key property; call repeatedly for composite keys."""
        column = column or prop
        self._keys[prop] = PrimaryKey(prop, column, auto)
        self._prop_to_column[prop] = column
        self._columns[prop] = ColumnMeta(property=prop, name=column, nullable=False)
        return self

    def map(self, prop: str, column: str | None = None, *, nullable: bool = True,
            type: str = '', length: int = 0, precision: int = 0, scale: int = 0,
            default: Any = None) -> 'EntityTypeBuilder':
        """Map a property to a column; key properties keep their key settings."""
        column = column or prop
        self._prop_to_column[prop] = column
        if prop in self._keys:
            key = self._keys[prop]
            self._keys[prop] = PrimaryKey(prop, column, key.auto)
            nullable = False
        self._columns[prop] = ColumnMeta(
            property=prop, name=column, nullable=nullable, default_value=default,
            type_override=type, precision=precision, scale=scale, length=length)
        return self

    def ignore(self, prop: str) -> 'EntityTypeBuilder':
        """Keep a property readable but out of DDL and DML."""
        column = self._prop_to_column.setdefault(prop, prop)
        current = self._columns.get(prop, ColumnMeta(property=prop, name=column))
        self._columns[prop] = replace(current, ignored=True)
        return self

    def done(self) -> MappingRegistry:
        """Validate and register the mapping."""
        mapping = EntityMapping(self._type, self._table, self._keys,
                                self._prop_to_column, self._columns)
        self._registry.register(mapping)
        return self._registry


class ModelBuilder:
    """Entry point handed to ``on_model_creating``."""

    def __init__(self, registry: MappingRegistry | None = None):
        self.registry = registry if registry is not None else MappingRegistry()

    def entity(self, type_: type) -> EntityTypeBuilder:
        return EntityTypeBuilder(self.registry, type_)
