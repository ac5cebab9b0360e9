"""
SQLite-specific strategy implementation.

SQLite uses type affinities rather than sized types, so explicit overrides
are normalized to TEXT/NUMERIC/INTEGER/REAL. An auto key is only legal as an
inline ``INTEGER PRIMARY KEY AUTOINCREMENT`` on the table's single key column
with integer affinity; every other key layout uses a table-level clause.
"""
import logging
from typing import TYPE_CHECKING, Any

from entitydb.sql import quote_identifier
from entitydb.strategy.base import DialectStrategy, SqlDialectType
from entitydb.strategy.base import build_type_table, register_strategy

if TYPE_CHECKING:
    from entitydb.mapping.meta import ColumnMeta, TableMeta
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)

_AFFINITY = {
    'CHAR': 'TEXT', 'VARCHAR': 'TEXT', 'NCHAR': 'TEXT', 'NVARCHAR': 'TEXT', 'TEXT': 'TEXT',
    'DECIMAL': 'NUMERIC', 'NUMERIC': 'NUMERIC',
    'INT': 'INTEGER', 'INTEGER': 'INTEGER', 'BIGINT': 'INTEGER', 'SMALLINT': 'INTEGER',
    'TINYINT': 'INTEGER', 'MEDIUMINT': 'INTEGER',
    'REAL': 'REAL', 'FLOAT': 'REAL', 'DOUBLE': 'REAL', 'DOUBLE PRECISION': 'REAL',
    'BOOLEAN': 'INTEGER', 'BOOL': 'INTEGER', 'BIT': 'INTEGER',
    'UUID': 'TEXT',
}


@register_strategy(SqlDialectType.SQLITE)
class SQLiteStrategy(DialectStrategy):
    """SQLite-specific rendering.
    """

    type_table = build_type_table(
        int64='INTEGER', int32='INTEGER', int16='INTEGER', int8='INTEGER',
        float64='REAL', float32='REAL', boolean='INTEGER',
        big_decimal='NUMERIC', uuid_='TEXT', date='TEXT',
        datetime_='TEXT', instant='TEXT', text='TEXT')
    fallback_type = 'TEXT'
    placeholder_style = '?'
    unbounded_limit = '-1'

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier, 'sqlite')

    def supports_create_if_not_exists(self) -> bool:
        return True

    def auto_increment_clause(self) -> str:
        return ' AUTOINCREMENT'

    def normalize_user_type(self, user: str, column: 'ColumnMeta') -> str:
        """Map an override onto its SQLite affinity; sizes are dropped."""
        bare = user.split('(', 1)[0].strip()
        return _AFFINITY.get(bare, user)

    def resolve_sql_type(self, meta, accessor, column) -> str:
        user = column.user_type()
        if user is not None:
            return self.normalize_user_type(user, column)
        if column.precision > 0:
            return 'NUMERIC'
        builtin = super().resolve_sql_type(meta, accessor, column)
        if builtin.startswith('VARCHAR('):
            return 'TEXT'
        return builtin

    def _inline_auto_key(self, meta: 'TableMeta') -> str | None:
        key = meta.single_auto_key
        if key is None:
            return None
        column = meta.column_meta(key.property)
        sql_type = self.resolve_sql_type(meta, meta.prop_to_field.get(key.property), column)
        if sql_type != 'INTEGER':
            return None
        return key.property

    def column_definitions(self, meta: 'TableMeta') -> list[str]:
        inline = self._inline_auto_key(meta)
        defs = []
        for prop in meta.mapped_properties():
            if prop == inline:
                name = meta.column_meta(prop).name
                defs.append(f'{self.q(name)} INTEGER PRIMARY KEY AUTOINCREMENT')
            else:
                defs.append(self.plain_column_definition(meta, prop))
        if inline is None:
            pk = self.primary_key_clause(meta)
            if pk:
                defs.append(pk)
        return defs

    def plain_column_definition(self, meta: 'TableMeta', prop: str) -> str:
        """Column definition without AUTOINCREMENT, which SQLite forbids off the rowid."""
        column = meta.column_meta(prop)
        sql_type = self.resolve_sql_type(meta, meta.prop_to_field.get(prop), column)
        parts = [self.q(column.name), sql_type]
        if not column.nullable:
            parts.append('NOT NULL')
        if column.default_value is not None:
            parts.append(f'DEFAULT {self.format_default(column.default_value)}')
        return ' '.join(parts)

    def build_connection_url(self, options: 'DatabaseOptions') -> dict[str, Any]:
        return {'drivername': 'sqlite', 'database': options.database}
