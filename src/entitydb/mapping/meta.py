"""
Resolved table metadata value objects.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from entitydb.exceptions import MappingConfigurationError, UsageError

T = TypeVar('T')


@dataclass(frozen=True)
class PrimaryKey:
    """One primary-key component of a table."""
    property: str
    column: str
    auto: bool = False


@dataclass(frozen=True)
class ColumnMeta:
    """DDL/DML hints for one mapped column.
    """
    property: str
    name: str
    nullable: bool = True
    default_value: Any = None
    type_override: str = ''
    precision: int = 0
    scale: int = 0
    length: int = 0
    ignored: bool = False

    def effective_type(self) -> str:
        """Compose the type override with precision and scale.

        Returns
            ``DECIMAL(10,2)`` style text, the bare override, or an empty string
        """
        if self.type_override and self.precision > 0 and self.scale >= 0:
            return f'{self.type_override}({self.precision},{self.scale})'
        return self.type_override or ''

    def user_type(self) -> str | None:
        """Trimmed, uppercased type override, or None when not set."""
        text = (self.type_override or '').strip().upper()
        return text or None


@dataclass(frozen=True)
class FieldAccessor:
    """Reads and writes one attribute of an entity instance."""
    name: str
    type: Any = Any

    def get(self, instance: Any) -> Any:
        return getattr(instance, self.name, None)

    def set(self, instance: Any, value: Any) -> None:
        setattr(instance, self.name, value)


def _frozen(mapping: dict) -> MappingProxyType:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, eq=False)
class TableMeta(Generic[T]):
    """Canonical mapping of one entity type to one table.

    ``prop_to_column`` order is the column order used for DDL and DML.
    ``keys`` and ``columns`` are keyed by property name.
    """
    type: type
    table: str
    keys: MappingProxyType = field(default_factory=lambda: _frozen({}))
    prop_to_column: MappingProxyType = field(default_factory=lambda: _frozen({}))
    prop_to_field: MappingProxyType = field(default_factory=lambda: _frozen({}))
    columns: MappingProxyType = field(default_factory=lambda: _frozen({}))

    def __post_init__(self):
        for name in ('keys', 'prop_to_column', 'prop_to_field', 'columns'):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

        missing = [p for p in (*self.keys, *self.columns) if p not in self.prop_to_column]
        if missing:
            raise MappingConfigurationError(
                f'{self.type.__name__}: properties {missing} are not mapped to columns')

        autos = [k.property for k in self.keys.values() if k.auto]
        if len(autos) > 1:
            raise MappingConfigurationError(
                f'{self.type.__name__}: only one auto primary key is allowed, got {autos}')

    def column_meta(self, prop: str) -> ColumnMeta:
        """Column metadata for a property, synthesized when not declared."""
        meta = self.columns.get(prop)
        if meta is None:
            meta = ColumnMeta(property=prop, name=self.prop_to_column[prop])
        return meta

    def is_ignored(self, prop: str) -> bool:
        meta = self.columns.get(prop)
        return meta is not None and meta.ignored

    def mapped_properties(self) -> list[str]:
        """Properties that take part in DDL and DML, in column order."""
        return [p for p in self.prop_to_column if not self.is_ignored(p)]

    def column_for(self, prop: str) -> str | None:
        return self.prop_to_column.get(prop)

    def property_for_column(self, column: str) -> str | None:
        """Reverse lookup of a column label, exact match first then case-insensitive."""
        for prop, col in self.prop_to_column.items():
            if col == column:
                return prop
        lowered = column.lower()
        for prop, col in self.prop_to_column.items():
            if col.lower() == lowered:
                return prop
        return None

    @property
    def auto_key(self) -> PrimaryKey | None:
        """The single auto key, or None when there is none."""
        for key in self.keys.values():
            if key.auto:
                return key
        return None

    @property
    def single_auto_key(self) -> PrimaryKey | None:
        """The auto key when it is the table's only key."""
        if len(self.keys) == 1:
            return self.auto_key
        return None

    def get(self, instance: Any, prop: str) -> Any:
        return self.prop_to_field[prop].get(instance)

    def set(self, instance: Any, prop: str, value: Any) -> None:
        self.prop_to_field[prop].set(instance, value)

    def key_values(self, instance: Any, operation: str) -> list[Any]:
        """Key values of an instance in key order.

        Raises
            UsageError: If the type has no keys or a key value is None
        """
        if not self.keys:
            raise UsageError(f'{operation}: {self.type.__name__} has no primary key')
        values = []
        for key in self.keys.values():
            value = self.get(instance, key.property)
            if value is None:
                raise UsageError(
                    f'{operation}: primary key {key.property!r} of {self.type.__name__} is None')
            values.append(value)
        return values
