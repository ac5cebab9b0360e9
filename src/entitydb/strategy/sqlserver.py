"""
SQL Server-specific strategy implementation.

This module handles SQL Server's differences from the shared rendering:
- Bracket quoting with ``]]`` escaping
- Trailing ``IDENTITY(1,1)`` on identity columns
- No ``CREATE TABLE IF NOT EXISTS``: the guard is emulated with OBJECT_ID
- ``OFFSET n ROWS FETCH NEXT m ROWS ONLY`` pagination, which requires ORDER BY
- Generated keys read back through ``@@IDENTITY``, which is session wide
  and so survives the sp_prepexec scope of a parameterized pyodbc INSERT
"""
import logging
from typing import TYPE_CHECKING, Any

from entitydb.sql import quote_identifier
from entitydb.strategy.base import DialectStrategy, SqlDialectType
from entitydb.strategy.base import build_type_table, register_strategy

if TYPE_CHECKING:
    from entitydb.mapping.meta import TableMeta
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)

IDENTITY_SQL = 'SELECT CAST(@@IDENTITY AS BIGINT) AS id_col'


@register_strategy(SqlDialectType.SQLSERVER)
class SQLServerStrategy(DialectStrategy):
    """SQL Server-specific rendering.
    """

    type_table = build_type_table(
        int64='BIGINT', int32='INT', int16='SMALLINT', int8='TINYINT',
        float64='FLOAT(53)', float32='REAL', boolean='BIT',
        big_decimal='DECIMAL(38,10)', uuid_='UNIQUEIDENTIFIER', date='DATE',
        datetime_='DATETIME2(6)', instant='DATETIME2(6)')
    fallback_type = 'NVARCHAR(255)'
    placeholder_style = '?'

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier, 'mssql')

    def supports_create_if_not_exists(self) -> bool:
        return False

    def auto_increment_clause(self) -> str:
        return ' IDENTITY(1,1)'

    def normalize_user_type(self, user, column) -> str:
        if 'CHAR' in user and '(' not in user and column.length > 0:
            kind = 'NVARCHAR' if user.startswith('N') else 'VARCHAR'
            return f'{kind}({column.length})'
        return super().normalize_user_type(user, column)

    def sized_string_type(self, length: int) -> str:
        return f'NVARCHAR({length})'

    def create_table_ddl(self, meta: 'TableMeta', if_not_exists: bool = False) -> str:
        """Render CREATE TABLE, wrapped in an OBJECT_ID check for the guard.
        """
        ddl = super().create_table_ddl(meta, False)
        if not if_not_exists:
            return ddl
        name = meta.table.replace("'", "''")
        return f"IF OBJECT_ID(N'{name}', N'U') IS NULL\nBEGIN\n{ddl}\nEND"

    def paginate(self, sql: str, order_by: str | None, limit: int | None,
                 offset: int | None) -> str:
        """Render ``OFFSET n ROWS [FETCH NEXT m ROWS ONLY]``.

        ORDER BY is mandatory for OFFSET/FETCH; ``(SELECT 1)`` stands in when
        neither the SQL nor the caller supplies one.
        """
        if limit is None and offset is None:
            return sql
        out = sql
        if 'order by' not in sql.lower():
            out += f' ORDER BY {order_by}' if order_by else ' ORDER BY (SELECT 1)'
        out += f' OFFSET {int(offset or 0)} ROWS'
        if limit is not None:
            out += f' FETCH NEXT {int(limit)} ROWS ONLY'
        return out

    def generated_keys(self, cursor: Any, row_count: int) -> list[Any]:
        """Count back from ``@@IDENTITY``, the last id of the batch."""
        if row_count <= 0:
            return []
        cursor.execute(IDENTITY_SQL)
        row = cursor.fetchone()
        if row is None or row[0] is None:
            return []
        last = int(row[0])
        return list(range(last - row_count + 1, last + 1))

    def build_connection_url(self, options: 'DatabaseOptions') -> dict[str, Any]:
        query = {'driver': options.odbc_driver}
        if options.timeout:
            query['timeout'] = str(options.timeout)
        return {
            'drivername': 'mssql+pyodbc',
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
