"""
Entity mapping and SQL generation for MySQL, PostgreSQL, SQL Server and SQLite.

Entities are plain classes. Their table mapping comes from an explicit
registration in `DbContext.on_model_creating`, from declarative markers, or
from naming convention:

    @entity(table='users')
    @dataclass
    class User:
        id: Annotated[int, Id()] = None
        name: Annotated[str, Column(nullable=False, length=100)] = ''

    with DbContext({'drivername': 'sqlite', 'database': ':memory:'}) as ctx:
        ctx.create_table(User)
        ctx.insert(User(name='alice'))
        alice = ctx.from_(User).filter(lambda f: f.equals('name', 'alice')).first()
"""
__version__ = '0.1.0'

from entitydb.batch import BatchCompiler
from entitydb.connection import ConnectionWrapper, Statement, connect
from entitydb.context import DbContext
from entitydb.exceptions import ConnectionFailure, DatabaseError, DbConnectionError
from entitydb.exceptions import DialectNotSupportedError, ExecutionError
from entitydb.exceptions import IntegrityError, MappingConfigurationError
from entitydb.exceptions import TypeConversionError, UsageError
from entitydb.mapping import Column, ColumnMeta, EntityMapping, Id, MappingRegistry
from entitydb.mapping import ModelBuilder, NotMapped, PrimaryKey, TableMeta, entity
from entitydb.mapping import resolve_table_meta
from entitydb.options import DatabaseOptions
from entitydb.query import Filters, On, Query, SetBuilder
from entitydb.select import Selector
from entitydb.strategy import SqlDialectType, detect_dialect, get_strategy
from entitydb.transaction import Transaction
from entitydb.types import TypeConverter

__all__ = [
    'BatchCompiler',
    'Column',
    'ColumnMeta',
    'ConnectionFailure',
    'ConnectionWrapper',
    'DatabaseError',
    'DatabaseOptions',
    'DbConnectionError',
    'DbContext',
    'DialectNotSupportedError',
    'EntityMapping',
    'ExecutionError',
    'Filters',
    'Id',
    'IntegrityError',
    'MappingConfigurationError',
    'MappingRegistry',
    'ModelBuilder',
    'NotMapped',
    'On',
    'PrimaryKey',
    'Query',
    'Selector',
    'SetBuilder',
    'SqlDialectType',
    'Statement',
    'TableMeta',
    'Transaction',
    'TypeConversionError',
    'TypeConverter',
    'UsageError',
    'connect',
    'detect_dialect',
    'entity',
    'get_strategy',
    'resolve_table_meta',
]
