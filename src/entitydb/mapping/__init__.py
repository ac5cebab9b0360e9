"""
Entity to table mapping: markers, metadata, fluent registration and resolution.
"""
from entitydb.mapping.markers import Column, Id, NotMapped, entity
from entitydb.mapping.meta import ColumnMeta, FieldAccessor, PrimaryKey, TableMeta
from entitydb.mapping.registry import EntityMapping, EntityTypeBuilder
from entitydb.mapping.registry import MappingRegistry, ModelBuilder
from entitydb.mapping.resolver import TableMetaCache, entity_fields
from entitydb.mapping.resolver import resolve_table_meta, to_snake_case

__all__ = [
    'Column',
    'ColumnMeta',
    'EntityMapping',
    'EntityTypeBuilder',
    'FieldAccessor',
    'Id',
    'MappingRegistry',
    'ModelBuilder',
    'NotMapped',
    'PrimaryKey',
    'TableMeta',
    'TableMetaCache',
    'entity',
    'entity_fields',
    'resolve_table_meta',
    'to_snake_case',
]
