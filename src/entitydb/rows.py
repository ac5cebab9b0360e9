"""
Row materialization: result rows (dicts keyed by column label) into entities.

Columns are matched to properties through `TableMeta.property_for_column`.
Unmatched labels are skipped, and a value the target field cannot accept is
logged and skipped rather than failing the row.
"""
import logging
from typing import TYPE_CHECKING, Any

from entitydb.cache import Cache
from entitydb.exceptions import TypeConversionError
from entitydb.mapping import TableMeta, resolve_table_meta
from entitydb.types import TypeConverter

if TYPE_CHECKING:
    from entitydb.mapping import MappingRegistry

logger = logging.getLogger(__name__)

DTO_META_CACHE = 'dto_meta'


def instantiate(cls: type) -> Any:
    """Create an empty instance, bypassing ``__init__`` when it needs arguments."""
    try:
        return cls()
    except TypeError:
        return cls.__new__(cls)


def map_row(meta: TableMeta, row: dict[str, Any]) -> Any:
    """Build one instance of ``meta.type`` from a result row.
    """
    instance = instantiate(meta.type)
    for label, value in row.items():
        prop = meta.property_for_column(label)
        if prop is None:
            continue
        accessor = meta.prop_to_field[prop]
        try:
            converted = TypeConverter.from_db(value, accessor.type)
        except TypeConversionError as err:
            logger.warning(f'Skipping column {label!r} of {meta.type.__name__}: {err}')
            continue
        accessor.set(instance, converted)
    return instance


def map_rows(meta: TableMeta, rows: list[dict[str, Any]]) -> list[Any]:
    return [map_row(meta, row) for row in rows]


def dto_meta(dto: type, registry: 'MappingRegistry | None' = None) -> TableMeta:
    """Throwaway metadata for a projection type, kept in a bounded LRU cache."""
    return Cache.get_instance().get_or_create(
        DTO_META_CACHE, (dto, registry), lambda: resolve_table_meta(dto, registry))
