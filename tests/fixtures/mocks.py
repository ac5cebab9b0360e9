"""
Mock DB-API connections for SQL generation tests.

A mocked connection records every statement that reaches the driver, so
tests can assert on the exact SQL and parameters without a database.

Usage:
    def test_delete(mock_context):
        ctx, cursor = mock_context('sqlite')
        ctx.delete(user)
        sql, params = cursor.execute.call_args.args
"""
from unittest.mock import MagicMock

import pytest
from entitydb import ConnectionWrapper

from tests.fixtures.models import AppContext


def make_dbapi_connection(rows=None, rowcount=1, lastrowid=None):
    """DB-API connection double whose cursor returns ``rows`` (list of dicts)."""
    cursor = MagicMock()
    cursor.rowcount = rowcount
    cursor.lastrowid = lastrowid
    if rows:
        labels = list(rows[0])
        cursor.description = [(label, None, None, None, None, None, None) for label in labels]
        cursor.fetchall.return_value = [tuple(row[label] for label in labels) for row in rows]
    else:
        cursor.description = None
        cursor.fetchall.return_value = []
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn, cursor


def executed(cursor):
    """(sql, params) pairs for every ``execute``/``executemany`` call, in order."""
    calls = []
    for call in cursor.method_calls:
        name, args, _ = call
        if name in {'execute', 'executemany'}:
            calls.append((args[0], args[1] if len(args) > 1 else ()))
    return calls


@pytest.fixture
def mock_connection():
    """Factory for a `ConnectionWrapper` over a mocked DB-API connection.

    Returns
        Factory ``(dialect, **cursor_kwargs) -> (wrapper, cursor)``
    """
    def factory(dialect='sqlite', **kwargs):
        conn, cursor = make_dbapi_connection(**kwargs)
        return ConnectionWrapper(conn, dialect=dialect), cursor

    return factory


@pytest.fixture
def mock_context(mock_connection):
    """Factory for an `AppContext` over a mocked connection.

    Returns
        Factory ``(dialect, **cursor_kwargs) -> (context, cursor)``
    """
    def factory(dialect='sqlite', **kwargs):
        wrapper, cursor = mock_connection(dialect, **kwargs)
        return AppContext(wrapper), cursor

    return factory
