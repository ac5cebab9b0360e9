"""
Dialect strategy factory.
"""
from functools import lru_cache
from typing import Any

from entitydb.exceptions import DialectNotSupportedError
from entitydb.strategy.base import _STRATEGY_REGISTRY
from entitydb.strategy.base import DialectStrategy as DialectStrategy
from entitydb.strategy.base import SqlDialectType as SqlDialectType
from entitydb.strategy.base import register_strategy as register_strategy
from entitydb.strategy.mysql import MySQLStrategy as MySQLStrategy
from entitydb.strategy.postgres import PostgresStrategy as PostgresStrategy
from entitydb.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from entitydb.strategy.sqlserver import SQLServerStrategy as SQLServerStrategy


def _validate_dialect(dialect: SqlDialectType) -> None:
    """Raise DialectNotSupportedError if dialect is not registered."""
    if dialect not in _STRATEGY_REGISTRY:
        available = [d.value for d in _STRATEGY_REGISTRY]
        raise DialectNotSupportedError(f'Unsupported dialect: {dialect}. Available: {available}')


@lru_cache(maxsize=8)
def _get_strategy(dialect: SqlDialectType) -> DialectStrategy:
    """Get cached strategy instance for a dialect."""
    _validate_dialect(dialect)
    return _STRATEGY_REGISTRY[dialect]()


def get_strategy(dialect: 'SqlDialectType | str') -> DialectStrategy:
    """Get strategy instance for a dialect or any name `SqlDialectType.from_name` accepts.
    """
    return _get_strategy(SqlDialectType.from_name(dialect))


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return [d.value for d in _STRATEGY_REGISTRY]


def is_supported_dialect(dialect: str) -> bool:
    """Check if a dialect name is supported."""
    try:
        return SqlDialectType.from_name(dialect) in _STRATEGY_REGISTRY
    except DialectNotSupportedError:
        return False


def get_strategy_class(dialect: 'SqlDialectType | str') -> type[DialectStrategy]:
    """Get the strategy class for a dialect without instantiating."""
    kind = SqlDialectType.from_name(dialect)
    _validate_dialect(kind)
    return _STRATEGY_REGISTRY[kind]


def detect_dialect(obj: Any) -> SqlDialectType:
    """Detect the dialect of a connection, engine, URL or product name.

    Checks, in order: strings (URL or product name), an explicit ``dialect``
    attribute, a SQLAlchemy engine or connection, then the DB-API module name.

    Raises
        DialectNotSupportedError: If nothing identifies a supported backend
    """
    if isinstance(obj, str):
        return SqlDialectType.from_name(obj.split('://', 1)[0])

    dialect = getattr(obj, 'dialect', None)
    if isinstance(dialect, SqlDialectType):
        return dialect
    if isinstance(dialect, str):
        return SqlDialectType.from_name(dialect)
    if dialect is not None and hasattr(dialect, 'name'):
        return SqlDialectType.from_name(str(dialect.name))

    engine = getattr(obj, 'engine', None)
    if engine is not None and hasattr(engine, 'dialect'):
        return SqlDialectType.from_name(str(engine.dialect.name))

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    return SqlDialectType.from_name(type_name)
