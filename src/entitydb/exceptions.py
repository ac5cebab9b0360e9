"""
Entity mapping and execution exception classes.
"""
import sqlite3

import psycopg
from sqlalchemy import exc as sa_exc


class DatabaseError(Exception):
    """Base class for all entitydb errors.
    """


class MappingConfigurationError(DatabaseError):
    """Invalid entity mapping, raised while resolving table metadata.
    """


class UsageError(DatabaseError):
    """API misuse detected before any statement is issued.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class DialectNotSupportedError(DatabaseError):
    """No SQL dialect matches the given connection, URL or product name.
    """


class TypeConversionError(DatabaseError):
    """Error converting a value between Python and database representations.
    """


class ExecutionError(DatabaseError):
    """Failure reported by the execution channel.

    Carries the logical operation (insert, update, delete, query, ddl) and
    the SQL text that failed, when known. The driver error is chained as
    ``__cause__``.
    """

    def __init__(self, operation: str, sql: str | None = None,
                 cause: BaseException | None = None) -> None:
        self.operation = operation
        self.sql = sql
        message = f'{operation} failed'
        if cause is not None:
            message = f'{message}: {cause}'
        if sql:
            message = f'{message}\nSQL: {sql}'
        super().__init__(message)


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    sa_exc.IntegrityError,
    )
