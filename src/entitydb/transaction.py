"""
Transaction handling for a `ConnectionWrapper`.
"""
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


_local = threading.local()


class Transaction:
    """Context manager for running multiple statements in one transaction.

    While active, statements issued on the connection skip their per-statement
    commit. Thread-local state tracks the active transaction; nested
    transactions on the same connection within a thread are not supported.

    Examples
        with Transaction(cn):
            cn.execute('delete from ...', *args)
            cn.execute('update ...', *args)
    """

    def __init__(self, cn: Any) -> None:
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = {}

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        if id(self.connection) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')
        _local.active_transactions[id(self.connection)] = True
        self.connection.in_transaction = True
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self.connection.rollback()
                logger.warning('Rolling back the current transaction')
            else:
                self.connection.commit()
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.pop(id(self.connection), None)
            self.connection.in_transaction = False

    def execute(self, sql: str, *args: Any) -> int:
        """Execute SQL within transaction context"""
        return self.connection.execute(sql, *args)

    def query(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Execute SELECT within transaction context"""
        return self.connection.query(sql, *args)
