import os
import sys
from dataclasses import dataclass, fields
from typing import Any

from entitydb.strategy import get_available_dialects, get_strategy_class
from entitydb.strategy import is_supported_dialect

__all__ = [
    'DatabaseOptions',
    'DEFAULT_MAX_PARAMS',
    'load_options',
]

# Stays below SQL Server's 2100 bound-parameter ceiling.
DEFAULT_MAX_PARAMS = 1800


def _scriptname() -> str | None:
    argv0 = sys.argv[0] if sys.argv else ''
    if not argv0 or argv0 == '-c':
        return None
    return os.path.splitext(os.path.basename(argv0))[0] or None


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `sqlite`, `postgresql`, `mysql`, `mssql`

    Batch options:
    - max_params: ceiling on bound parameters per statement (default: 1800)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    odbc_driver: str = 'ODBC Driver 18 for SQL Server'
    max_params: int = DEFAULT_MAX_PARAMS
    check_connection: bool = True

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        if self.max_params < 1:
            raise ValueError('max_params must be positive')
        self.appname = self.appname or _scriptname() or 'python_console'
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)


def load_options(options: 'DatabaseOptions | dict[str, Any] | None' = None,
                 **kwargs: Any) -> DatabaseOptions:
    """Build DatabaseOptions from a dataclass, a dict, keyword arguments, or a mix.

    Unknown keys raise TypeError.
    """
    if isinstance(options, DatabaseOptions):
        if not kwargs:
            return options
        options = {f.name: getattr(options, f.name) for f in fields(DatabaseOptions)}
    merged = dict(options or {})
    merged.update(kwargs)
    return DatabaseOptions(**merged)
