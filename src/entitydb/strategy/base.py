"""
Base strategy interface for SQL dialects.

Defines the abstract base class every backend-specific strategy inherits from.
A strategy renders DDL, resolves column types, quotes identifiers, builds
INSERT statements and rewrites SELECT statements for pagination. Shared
rendering lives here; each backend overrides the parts where its grammar
differs.

Each concrete strategy registers itself for one `SqlDialectType`:

    @register_strategy(SqlDialectType.SQLITE)
    class SQLiteStrategy(DialectStrategy):
        ...
"""
import datetime
import decimal
import logging
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from entitydb.exceptions import DialectNotSupportedError
from entitydb.sql import make_placeholders, standardize_placeholders
from entitydb.types import native_type

if TYPE_CHECKING:
    from entitydb.mapping.meta import ColumnMeta, FieldAccessor, TableMeta
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)


class SqlDialectType(str, Enum):
    """Supported backends. Values match SQLAlchemy dialect names."""
    MYSQL = 'mysql'
    POSTGRES = 'postgresql'
    SQLSERVER = 'mssql'
    SQLITE = 'sqlite'

    @classmethod
    def from_name(cls, name: str) -> 'SqlDialectType':
        """Map a driver, URL scheme or database product name to a dialect.

        Examples
            >>> SqlDialectType.from_name('MariaDB')
            <SqlDialectType.MYSQL: 'mysql'>
            >>> SqlDialectType.from_name('Microsoft SQL Server')
            <SqlDialectType.SQLSERVER: 'mssql'>
        """
        if isinstance(name, SqlDialectType):
            return name
        text = (name or '').strip().lower()
        if 'mysql' in text or 'mariadb' in text:
            return cls.MYSQL
        if 'postgres' in text or 'psycopg' in text:
            return cls.POSTGRES
        if 'microsoft sql server' in text or 'sqlserver' in text or 'mssql' in text \
                or 'pyodbc' in text:
            return cls.SQLSERVER
        if 'sqlite' in text:
            return cls.SQLITE
        raise DialectNotSupportedError(f'Unsupported database: {name!r}')


# Registry of dialect -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[SqlDialectType, type['DialectStrategy']] = {}


def register_strategy(dialect: SqlDialectType):
    """Decorator to register a strategy class for a dialect.
    """
    def decorator(cls: type['DialectStrategy']) -> type['DialectStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        cls.dialect = dialect
        return cls
    return decorator


class DialectStrategy(ABC):
    """Base class for backend-specific SQL rendering.
    """

    dialect: SqlDialectType

    # Built-in SQL type per native Python type, looked up along the MRO.
    type_table: dict[type, str] = {}
    fallback_type: str = 'VARCHAR(255)'
    decimal_name: str = 'DECIMAL'
    # LIMIT emitted when only an OFFSET is given, for grammars without bare OFFSET
    unbounded_limit: str | None = None

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g. 'postgresql', 'sqlite')."""
        return self.dialect.value

    # ------------------------------------------------------------------
    # Quoting and capabilities
    # ------------------------------------------------------------------

    @abstractmethod
    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier, doubling the dialect's closing quote character.

        Args:
            identifier: Table, column or alias name

        Returns
            str: Quoted identifier
        """

    def q(self, identifier: str) -> str:
        return self.quote_identifier(identifier)

    @abstractmethod
    def supports_create_if_not_exists(self) -> bool:
        """Whether ``CREATE TABLE IF NOT EXISTS`` is native syntax."""

    def supports_drop_if_exists(self) -> bool:
        """Whether ``DROP TABLE IF EXISTS`` is native syntax."""
        return True

    @abstractmethod
    def auto_increment_clause(self) -> str:
        """Trailing clause appended to an auto key column, or ''."""

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def resolve_sql_type(self, meta: 'TableMeta', accessor: 'FieldAccessor | None',
                         column: 'ColumnMeta') -> str:
        """Resolve the SQL type of one column.

        Precedence: explicit override (sized/scaled when it names a character
        or decimal type), precision implies decimal, length implies a sized
        string for ``str`` fields, the built-in type table, then the
        dialect's fallback type.

        Args:
            meta: Table metadata the column belongs to
            accessor: Field accessor carrying the declared Python type
            column: Column metadata

        Returns
            str: SQL type text
        """
        user = column.user_type()
        py_type = native_type(accessor.type) if accessor is not None else None
        if user is not None:
            return self.normalize_user_type(user, column)
        if column.precision > 0:
            return f'{self.decimal_name}({column.precision},{max(0, column.scale)})'
        if column.length > 0 and py_type is str:
            return self.sized_string_type(column.length)
        builtin = self.builtin_type(py_type)
        if builtin is not None:
            return builtin
        return self.fallback_type

    def normalize_user_type(self, user: str, column: 'ColumnMeta') -> str:
        """Apply length/precision to a bare CHAR/VARCHAR/DECIMAL/NUMERIC override."""
        if user in {'CHAR', 'VARCHAR'} and column.length > 0:
            return f'{user}({column.length})'
        if user in {'DECIMAL', 'NUMERIC'} and column.precision > 0:
            return f'{self.decimal_name}({column.precision},{max(0, column.scale)})'
        return column.effective_type().strip().upper()

    def sized_string_type(self, length: int) -> str:
        return f'VARCHAR({length})'

    def builtin_type(self, py_type: Any) -> str | None:
        """Look up a native type in the type table, walking its MRO."""
        if not isinstance(py_type, type):
            return None
        for klass in py_type.__mro__:
            if klass in self.type_table:
                return self.type_table[klass]
        return None

    def format_default(self, value: Any) -> str:
        """Render a DEFAULT literal; strings are emitted verbatim."""
        if isinstance(value, bool):
            return '1' if value else '0'
        return str(value)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def column_definition(self, meta: 'TableMeta', prop: str) -> str:
        """Render ``col TYPE [auto][ NOT NULL][ DEFAULT v]`` for one property."""
        column = meta.column_meta(prop)
        accessor = meta.prop_to_field.get(prop)
        sql_type = self.resolve_sql_type(meta, accessor, column)
        key = meta.keys.get(prop)
        parts = [self.q(column.name), sql_type]
        if key is not None and key.auto and self.auto_increment_clause():
            parts.append(self.auto_increment_clause().strip())
        if not column.nullable:
            parts.append('NOT NULL')
        if column.default_value is not None:
            parts.append(f'DEFAULT {self.format_default(column.default_value)}')
        return ' '.join(parts)

    def primary_key_clause(self, meta: 'TableMeta') -> str | None:
        if not meta.keys:
            return None
        cols = ', '.join(self.q(key.column) for key in meta.keys.values())
        return f'PRIMARY KEY ({cols})'

    def column_definitions(self, meta: 'TableMeta') -> list[str]:
        defs = [self.column_definition(meta, prop) for prop in meta.mapped_properties()]
        pk = self.primary_key_clause(meta)
        if pk:
            defs.append(pk)
        return defs

    def create_table_ddl(self, meta: 'TableMeta', if_not_exists: bool = False) -> str:
        """Render CREATE TABLE for the mapped columns.

        Args:
            meta: Table metadata
            if_not_exists: Add an existence guard

        Returns
            str: DDL statement
        """
        guard = ' IF NOT EXISTS' if if_not_exists and self.supports_create_if_not_exists() else ''
        body = ',\n  '.join(self.column_definitions(meta))
        return f'CREATE TABLE{guard} {self.q(meta.table)} (\n  {body}\n)'

    def drop_table_ddl(self, meta: 'TableMeta', if_exists: bool = False) -> str:
        guard = ' IF EXISTS' if if_exists and self.supports_drop_if_exists() else ''
        return f'DROP TABLE{guard} {self.q(meta.table)}'

    # ------------------------------------------------------------------
    # DML
    # ------------------------------------------------------------------

    def use_insert_returning(self) -> bool:
        """Whether INSERT returns generated keys as a result set."""
        return False

    def insert_returning_suffix(self, meta: 'TableMeta') -> str:
        return ''

    def build_insert_sql(self, meta: 'TableMeta', columns: list[str]) -> str:
        """Render a single-row INSERT, with the RETURNING suffix when used."""
        return self.build_multi_insert_sql(meta, columns, 1)

    def build_multi_insert_sql(self, meta: 'TableMeta', columns: list[str], rows: int) -> str:
        """Render ``INSERT INTO t (cols) VALUES (?, ?), (?, ?)`` for ``rows`` rows."""
        cols = ', '.join(self.q(c) for c in columns)
        group = f'({make_placeholders(len(columns))})'
        values = ', '.join([group] * rows)
        sql = f'INSERT INTO {self.q(meta.table)} ({cols}) VALUES {values}'
        if self.use_insert_returning():
            sql += self.insert_returning_suffix(meta)
        return sql

    def paginate(self, sql: str, order_by: str | None, limit: int | None,
                 offset: int | None) -> str:
        """Append LIMIT/OFFSET, adding ORDER BY only when the SQL lacks one.
        """
        if limit is None and offset is None:
            return sql
        out = sql
        if order_by and 'order by' not in sql.lower():
            out += f' ORDER BY {order_by}'
        if limit is not None:
            out += f' LIMIT {int(limit)}'
        elif self.unbounded_limit is not None:
            out += f' LIMIT {self.unbounded_limit}'
        if offset is not None:
            out += f' OFFSET {int(offset)}'
        return out

    # ------------------------------------------------------------------
    # Execution channel support
    # ------------------------------------------------------------------

    placeholder_style: str = '?'

    def standardize_sql(self, sql: str) -> str:
        """Convert ``?`` markers to this driver's placeholder style."""
        return standardize_placeholders(sql, self.placeholder_style)

    def generated_keys(self, cursor: Any, row_count: int) -> list[Any]:
        """Keys generated by the last INSERT, in row order.

        Default: ``cursor.lastrowid`` names the last row of a consecutive run.
        """
        last = getattr(cursor, 'lastrowid', None)
        if last is None or row_count <= 0:
            return []
        return list(range(last - row_count + 1, last + 1))

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return ``sa.URL.create`` keyword arguments for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra SQLAlchemy create_engine kwargs for this dialect."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Option fields that must be set for this dialect."""
        return ['database']

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')


# Native type tables share their keys; dialects supply the SQL text.
NATIVE_INT64 = (int, np.int64)
NATIVE_INT32 = (np.int32,)
NATIVE_INT16 = (np.int16,)
NATIVE_INT8 = (np.int8,)
NATIVE_FLOAT64 = (float, np.float64)
NATIVE_FLOAT32 = (np.float32,)


def build_type_table(*, int64: str, int32: str, int16: str, int8: str,
                     float64: str, float32: str, boolean: str, big_decimal: str,
                     uuid_: str, date: str, datetime_: str, instant: str,
                     text: str | None = None) -> dict[type, str]:
    """Assemble a native-type → SQL type table for one dialect."""
    table: dict[type, str] = {}
    for keys, sql in ((NATIVE_INT64, int64), (NATIVE_INT32, int32),
                      (NATIVE_INT16, int16), (NATIVE_INT8, int8),
                      (NATIVE_FLOAT64, float64), (NATIVE_FLOAT32, float32)):
        for key in keys:
            table[key] = sql
    table[bool] = boolean
    table[np.bool_] = boolean
    table[decimal.Decimal] = big_decimal
    table[uuid.UUID] = uuid_
    table[datetime.date] = date
    table[datetime.datetime] = datetime_
    table[pd.Timestamp] = instant
    if text is not None:
        table[str] = text
    return table
