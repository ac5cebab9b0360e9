"""
PostgreSQL-specific strategy implementation.

PostgreSQL differs from the shared rendering in two places:
- identity columns replace their type with ``<TYPE> GENERATED BY DEFAULT AS
  IDENTITY`` instead of carrying a trailing clause
- INSERT appends ``RETURNING`` for auto keys, so generated ids are read from
  the result set rather than from the driver
"""
import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from entitydb.sql import quote_identifier
from entitydb.strategy.base import DialectStrategy, SqlDialectType
from entitydb.strategy.base import build_type_table, register_strategy
from entitydb.types import native_type

if TYPE_CHECKING:
    from entitydb.mapping.meta import TableMeta
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)

IDENTITY = 'GENERATED BY DEFAULT AS IDENTITY'


@register_strategy(SqlDialectType.POSTGRES)
class PostgresStrategy(DialectStrategy):
    """PostgreSQL-specific rendering.
    """

    type_table = build_type_table(
        int64='BIGINT', int32='INTEGER', int16='SMALLINT', int8='SMALLINT',
        float64='DOUBLE PRECISION', float32='REAL', boolean='BOOLEAN',
        big_decimal='NUMERIC(38,10)', uuid_='UUID', date='DATE',
        datetime_='TIMESTAMP(6)', instant='TIMESTAMP(6) WITH TIME ZONE')
    fallback_type = 'VARCHAR(255)'
    decimal_name = 'NUMERIC'
    placeholder_style = '%s'

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier, 'postgresql')

    def supports_create_if_not_exists(self) -> bool:
        return True

    def auto_increment_clause(self) -> str:
        return ''

    def normalize_user_type(self, user, column) -> str:
        if 'CHAR' in user and '(' not in user and column.length > 0:
            return f'{user}({column.length})'
        return super().normalize_user_type(user, column)

    def identity_type(self, py_type: Any, base_type: str) -> str:
        """Choose the identity form from the field's integer width.

        Non-integer keys keep their base type.
        """
        bt = base_type.upper()
        if py_type is int or py_type is np.int64 or 'BIGINT' in bt:
            return f'BIGINT {IDENTITY}'
        if py_type is np.int32 or ('INT' in bt and 'SMALLINT' not in bt):
            return f'INTEGER {IDENTITY}'
        if py_type is np.int16 or py_type is np.int8 or 'SMALLINT' in bt:
            return f'SMALLINT {IDENTITY}'
        return base_type

    def column_definition(self, meta: 'TableMeta', prop: str) -> str:
        column = meta.column_meta(prop)
        accessor = meta.prop_to_field.get(prop)
        sql_type = self.resolve_sql_type(meta, accessor, column)
        key = meta.keys.get(prop)
        if key is not None and key.auto:
            py_type = native_type(accessor.type) if accessor is not None else None
            sql_type = self.identity_type(py_type, sql_type)
        parts = [self.q(column.name), sql_type]
        if not column.nullable:
            parts.append('NOT NULL')
        if column.default_value is not None:
            parts.append(f'DEFAULT {self.format_default(column.default_value)}')
        return ' '.join(parts)

    def format_default(self, value: Any) -> str:
        if isinstance(value, bool):
            return 'TRUE' if value else 'FALSE'
        return super().format_default(value)

    def use_insert_returning(self) -> bool:
        return True

    def insert_returning_suffix(self, meta: 'TableMeta') -> str:
        """`` RETURNING`` over every auto key column, or '' when there is none."""
        cols = [self.q(key.column) for key in meta.keys.values() if key.auto]
        if not cols:
            return ''
        return ' RETURNING ' + ', '.join(cols)

    def generated_keys(self, cursor: Any, row_count: int) -> list[Any]:
        # Keys arrive through RETURNING
        return []

    def build_connection_url(self, options: 'DatabaseOptions') -> dict[str, Any]:
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname
        return {
            'drivername': 'postgresql+psycopg',
            'username': options.username,
            'password': options.password,
            'host': options.hostname,
            'port': options.port or None,
            'database': options.database,
            'query': query,
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'username', 'database']
