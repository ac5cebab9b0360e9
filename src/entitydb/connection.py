"""
Execution channel built on SQLAlchemy engines and DB-API connections.

This module provides:
1. The `connect()` function for opening a connection from `DatabaseOptions`
2. The `ConnectionWrapper` class, the single connection a `DbContext` owns
3. The `Statement` class: prepare, bind, execute, fetch rows, generated keys
4. Engine creation through a thread-safe registry and a connect retry decorator

Compiled SQL arrives with ``?`` markers; the dialect strategy converts it to
the driver's paramstyle and `TypeConverter` adapts every bound value. Driver
errors are re-raised as `ExecutionError` carrying the operation and SQL.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from entitydb.exceptions import DatabaseError, DbConnectionError, ExecutionError
from entitydb.options import DatabaseOptions, load_options
from entitydb.strategy import SqlDialectType, detect_dialect, get_strategy
from entitydb.types import TypeConverter

__all__ = [
    'ConnectionWrapper',
    'Statement',
    'connect',
    'check_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    strategy = get_strategy(options.drivername)
    return url_creator(**strategy.build_connection_url(options))


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Only wraps connection establishment; statements are never retried.

    Supports both @check_connection and @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while tries < max_retries:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    tries += 1
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = repr(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        url = create_url_from_options(options)
        strategy = get_strategy(options.drivername)

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')
        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def connect(options: 'DatabaseOptions | dict[str, Any] | None' = None,
            **kwargs: Any) -> 'ConnectionWrapper':
    """Open a connection described by options.

    Examples
        cn = connect({'drivername': 'sqlite', 'database': ':memory:'})
        cn = connect(drivername='postgresql', hostname='db', username='app',
                     password='secret', database='app')
    """
    options = load_options(options, **kwargs)
    engine = get_engine_for_options(options)
    opener = engine.connect
    if options.check_connection:
        opener = check_connection(opener)
    sa_connection = opener()
    logger.debug(f'Connected to {options.drivername} database {options.database}')
    return ConnectionWrapper(sa_connection, options=options)


class Statement:
    """One prepared statement on a `ConnectionWrapper`.

    Ordinals passed to `bind` are 1-based. Rows are returned as dicts keyed by
    the result column labels, so SQL aliases are honored.
    """

    def __init__(self, connection: 'ConnectionWrapper', sql: str, operation: str = 'query'):
        self.connection = connection
        self.sql = sql
        self.operation = operation
        self._params: dict[int, Any] = {}
        self._batch: list[tuple] = []
        self._cursor = None
        self._row_count = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def bind(self, ordinal: int, value: Any) -> Self:
        if ordinal < 1:
            raise ValueError(f'Parameter ordinals start at 1, got {ordinal}')
        self._params[ordinal] = value
        return self

    def bind_all(self, values: list | tuple) -> Self:
        self._params = {i: v for i, v in enumerate(values, start=1)}
        return self

    def add_batch(self) -> Self:
        """Queue the currently bound parameters for `execute_batch`."""
        self._batch.append(self._ordered_params())
        self._params = {}
        return self

    def _ordered_params(self) -> tuple:
        if not self._params:
            return ()
        missing = [i for i in range(1, max(self._params) + 1) if i not in self._params]
        if missing:
            raise ValueError(f'Unbound parameter ordinals: {missing}')
        return tuple(self._params[i] for i in sorted(self._params))

    def _run(self, many: bool = False) -> Any:
        cn = self.connection
        strategy = cn.strategy
        sql = strategy.standardize_sql(self.sql)
        if many:
            batch = [TypeConverter.convert_params(p, cn.dialect.value) for p in self._batch]
        else:
            params = TypeConverter.convert_params(self._ordered_params(), cn.dialect.value)
        self.close()
        self._cursor = cn.dbapi_connection.cursor()
        start = time.perf_counter()
        try:
            if many:
                logger.debug(f'{self.operation}: {self.sql} [batch of {len(batch)}]')
                self._cursor.executemany(sql, batch)
                self._batch = []
            else:
                logger.debug(f'{self.operation}: {self.sql} {list(params)}')
                self._cursor.execute(sql, params)
        except DatabaseError:
            cn.rollback_unless_in_transaction()
            raise
        except Exception as err:
            cn.rollback_unless_in_transaction()
            raise ExecutionError(self.operation, self.sql, err) from err
        finally:
            cn.addcall(time.perf_counter() - start)
        return self._cursor

    def execute_query(self) -> list[dict[str, Any]]:
        """Execute and fetch all rows as dicts keyed by column label."""
        cursor = self._run()
        try:
            if cursor.description is None:
                rows = []
            else:
                labels = [desc[0] for desc in cursor.description]
                rows = []
                for values in cursor.fetchall():
                    # first column wins when labels repeat, e.g. u.*, o.*
                    row = {}
                    for label, value in zip(labels, values):
                        row.setdefault(label, value)
                    rows.append(row)
        except Exception as err:
            self.connection.rollback_unless_in_transaction()
            raise ExecutionError(self.operation, self.sql, err) from err
        self._row_count = len(rows)
        if self.operation != 'query':
            self.connection.commit_unless_in_transaction()
        return rows

    def execute_update(self) -> int:
        """Execute and return the affected row count."""
        cursor = self._run()
        self._row_count = max(cursor.rowcount, 0)
        self.connection.commit_unless_in_transaction()
        return self._row_count

    def execute_batch(self) -> int:
        """Execute every queued parameter set; returns the summed row count."""
        if not self._batch:
            return 0
        size = len(self._batch)
        cursor = self._run(many=True)
        rowcount = cursor.rowcount
        # Some drivers report -1 for executemany
        self._row_count = rowcount if rowcount is not None and rowcount >= 0 else size
        self.connection.commit_unless_in_transaction()
        return self._row_count

    def generated_keys(self) -> list[Any]:
        """Keys generated by the last executed INSERT, in row order."""
        if self._cursor is None:
            return []
        try:
            return self.connection.strategy.generated_keys(self._cursor, self._row_count)
        except Exception as err:
            raise ExecutionError(self.operation, self.sql, err) from err

    def close(self) -> None:
        if self._cursor is not None:
            try:
                self._cursor.close()
            finally:
                self._cursor = None


class ConnectionWrapper:
    """Wraps a SQLAlchemy or DB-API connection as an execution channel.

    Tracks call counts and execution time, commits after each statement unless
    a `Transaction` is active, and knows its dialect strategy.
    """

    def __init__(self, connection: Any, dialect: 'SqlDialectType | str | None' = None,
                 options: DatabaseOptions | None = None) -> None:
        if isinstance(connection, sa.engine.Connection):
            self.sa_connection = connection
            self.dbapi_connection = connection.connection
        else:
            self.sa_connection = None
            self.dbapi_connection = connection
        if dialect is not None:
            self.dialect = SqlDialectType.from_name(dialect)
        elif options is not None:
            self.dialect = SqlDialectType.from_name(options.drivername)
        else:
            self.dialect = detect_dialect(connection)
        self.strategy = get_strategy(self.dialect)
        self.options = options
        self.in_transaction = False
        self.calls = 0
        self.time = 0.0
        self.closed = False

    @classmethod
    def wrap(cls, connection: Any, dialect: 'SqlDialectType | str | None' = None) -> 'ConnectionWrapper':
        """Return connection as a ConnectionWrapper, wrapping it if needed."""
        if isinstance(connection, ConnectionWrapper):
            return connection
        return cls(connection, dialect=dialect)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def max_params(self) -> int | None:
        return self.options.max_params if self.options is not None else None

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def prepare(self, sql: str, operation: str = 'query') -> Statement:
        return Statement(self, sql, operation)

    def execute(self, sql: str, *params: Any, operation: str = 'execute') -> int:
        """Execute one statement with positional ``?`` parameters; returns row count."""
        with self.prepare(sql, operation) as stmt:
            return stmt.bind_all(params).execute_update()

    def query(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        with self.prepare(sql, 'query') as stmt:
            return stmt.bind_all(params).execute_query()

    def commit(self) -> None:
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.dbapi_connection.rollback()

    def commit_unless_in_transaction(self) -> None:
        if not self.in_transaction:
            self.commit()

    def rollback_unless_in_transaction(self) -> None:
        if self.in_transaction:
            return
        try:
            self.rollback()
        except Exception as err:
            logger.debug(f'Rollback after failed statement raised: {err}')

    def close(self) -> None:
        """Commit pending work (outside transactions) and close the connection.
        """
        if self.closed:
            return
        if not self.in_transaction:
            self.commit()
        if self.sa_connection is not None:
            self.sa_connection.close()
        else:
            self.dbapi_connection.close()
        self.closed = True
        logger.debug(f'Connection closed: {self.calls} statements in {self.time:.2f}s')
