"""
MySQL/MariaDB-specific strategy implementation.

- Backtick quoting with doubled backticks
- Trailing AUTO_INCREMENT on the identity column, table-level PRIMARY KEY
- LIMIT/OFFSET pagination
- ``cursor.lastrowid`` reports the first id of a multi-row INSERT
"""
import logging
from typing import TYPE_CHECKING, Any

from entitydb.sql import quote_identifier
from entitydb.strategy.base import DialectStrategy, SqlDialectType
from entitydb.strategy.base import build_type_table, register_strategy

if TYPE_CHECKING:
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy(SqlDialectType.MYSQL)
class MySQLStrategy(DialectStrategy):
    """MySQL-specific rendering.
    """

    type_table = build_type_table(
        int64='BIGINT', int32='INT', int16='SMALLINT', int8='TINYINT',
        float64='DOUBLE', float32='FLOAT', boolean='TINYINT(1)',
        big_decimal='DECIMAL(38,10)', uuid_='CHAR(36)', date='DATE',
        datetime_='DATETIME(6)', instant='DATETIME(6)')
    fallback_type = 'VARCHAR(255)'
    placeholder_style = '%s'
    unbounded_limit = '18446744073709551615'

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier, 'mysql')

    def supports_create_if_not_exists(self) -> bool:
        return True

    def auto_increment_clause(self) -> str:
        return ' AUTO_INCREMENT'

    def generated_keys(self, cursor: Any, row_count: int) -> list[Any]:
        """MySQL reports the first id of the batch; consecutive ids follow."""
        first = getattr(cursor, 'lastrowid', None)
        if first is None or row_count <= 0:
            return []
        return list(range(first, first + row_count))

    def build_connection_url(self, options: 'DatabaseOptions') -> dict[str, Any]:
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        return {
            'drivername': 'mysql+pymysql',
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
