"""
Value coercion between Python objects and database representations.

Two directions are handled:

1. Python → Database (`TypeConverter.to_db`): NumPy and pandas scalars are
   unwrapped, missing-value markers (NaN, NaT, pd.NA) become NULL, and values a
   driver cannot bind natively are rendered into a representation it can.
2. Database → Python (`TypeConverter.from_db`): values read from a result row
   are widened or parsed into the declared type of the target field.

`native_type` reduces a field annotation to the key used by the dialects'
built-in SQL type tables.
"""
import datetime
import decimal
import logging
import math
import types
import typing
import uuid
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd

from entitydb.exceptions import TypeConversionError

logger = logging.getLogger(__name__)

TRUE_STRINGS: set[str] = {'true', 't', '1', 'yes', 'y', 'on'}

INTEGER_TYPES: tuple[type, ...] = (int, np.int64, np.int32, np.int16, np.int8)
FLOAT_TYPES: tuple[type, ...] = (float, np.float64, np.float32)


def native_type(annotation: Any) -> Any:
    """Strip Annotated, Optional and union-with-None wrappers from a type hint.

    Examples
        >>> native_type(typing.Optional[int])
        <class 'int'>
        >>> native_type(typing.Annotated[str, 'meta'])
        <class 'str'>
    """
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return native_type(typing.get_args(annotation)[0])
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return native_type(args[0])
    return annotation


def is_integer_type(tp: Any) -> bool:
    """Check whether a native type has integer affinity (bool excluded)."""
    return isinstance(tp, type) and tp is not bool and issubclass(tp, INTEGER_TYPES)


def is_missing(value: Any) -> bool:
    """Check for None and the NumPy/pandas missing-value markers."""
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, float | np.floating):
        return math.isnan(value)
    if isinstance(value, np.datetime64):
        return bool(np.isnat(value))
    return False


def _unwrap_numpy(value: Any) -> Any:
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer | np.floating):
        return value.item()
    if isinstance(value, np.datetime64):
        return pd.Timestamp(value).to_pydatetime()
    return value


class TypeConverter:
    """Bidirectional value conversion used at the execution boundary.
    """

    @staticmethod
    def to_db(value: Any, dialect: str = 'postgresql') -> Any:
        """Convert a Python value into something the dialect's driver binds.

        Args:
            value: Python value bound to a statement parameter
            dialect: Dialect name ('mysql', 'postgresql', 'mssql', 'sqlite')

        Returns
            Driver-compatible value
        """
        if is_missing(value):
            return None
        value = _unwrap_numpy(value)
        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()

        if isinstance(value, uuid.UUID) and dialect != 'postgresql':
            return str(value)

        if dialect == 'sqlite':
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, decimal.Decimal):
                return str(value)
            if isinstance(value, datetime.datetime):
                return value.isoformat(sep=' ')
            if isinstance(value, datetime.date):
                return value.isoformat()
        return value

    @classmethod
    def convert_params(cls, params: list | tuple, dialect: str) -> tuple:
        """Convert every parameter of a statement."""
        return tuple(cls.to_db(p, dialect) for p in params)

    @staticmethod
    def from_db(value: Any, target: Any) -> Any:
        """Convert a value read from a result row into the target field type.

        Args:
            value: Raw value from the driver
            target: Declared type of the receiving field (wrappers allowed)

        Returns
            Converted value

        Raises
            TypeConversionError: If the value cannot represent the target type
        """
        if value is None:
            return None
        target = native_type(target)
        if not isinstance(target, type) or target is object:
            return value
        if type(value) is target:
            return value

        try:
            return _convert(value, target)
        except (TypeError, ValueError, ArithmeticError, OverflowError) as err:
            raise TypeConversionError(
                f'Cannot convert {type(value).__name__} value {value!r} to {target.__name__}'
            ) from err


def _convert(value: Any, target: type) -> Any:
    value = _unwrap_numpy(value)

    if target is bool:
        if isinstance(value, str):
            return value.strip().lower() in TRUE_STRINGS
        if isinstance(value, bytes):
            return any(value)
        return int(value) != 0

    if target is str:
        if isinstance(value, bytes):
            return value.decode()
        return str(value)

    if issubclass(target, INTEGER_TYPES):
        if isinstance(value, bool):
            return target(int(value))
        if isinstance(value, str):
            value = decimal.Decimal(value.strip())
        return target(int(value))

    if issubclass(target, FLOAT_TYPES):
        if isinstance(value, str):
            value = value.strip()
        return target(float(value))

    if target is decimal.Decimal:
        if isinstance(value, float):
            return decimal.Decimal(repr(value))
        return decimal.Decimal(str(value).strip())

    if target is uuid.UUID:
        if isinstance(value, bytes | bytearray) and len(value) == 16:
            return uuid.UUID(bytes=bytes(value))
        return uuid.UUID(str(value))

    if target is pd.Timestamp:
        ts = pd.Timestamp(value)
        if ts.tzinfo is None:
            ts = ts.tz_localize('UTC')
        return ts

    if target is datetime.datetime:
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, str):
            return dateutil.parser.parse(value)
        if isinstance(value, datetime.datetime):
            return value

    if target is datetime.date:
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, str):
            return dateutil.parser.parse(value).date()
        if isinstance(value, datetime.date):
            return value

    if target is datetime.time and isinstance(value, str):
        return dateutil.parser.parse(value).time()

    if isinstance(value, target):
        return value

    logger.debug(f'No conversion rule for {type(value).__name__} -> {target.__name__}')
    return value
