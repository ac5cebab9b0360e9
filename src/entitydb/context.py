"""
DbContext: the mapping owner and entry point for DDL, CRUD and queries.

    class AppContext(DbContext):
        def on_model_creating(self, model):
            model.entity(Order).to_table('orders').has_id('id').map('total', precision=10, scale=2).done()

    with AppContext({'drivername': 'sqlite', 'database': ':memory:'}) as ctx:
        ctx.create_tables(User, Order)
        ctx.insert(User(name='alice'))
        active = ctx.from_(User).filter(lambda f: f.equals('status', 'active')).to_list()
"""
import logging
import threading
from collections.abc import Iterable
from typing import Any, Self, TypeVar

from entitydb.batch import BatchCompiler, assign_key, insert_properties
from entitydb.connection import ConnectionWrapper, connect
from entitydb.exceptions import UsageError
from entitydb.mapping import MappingRegistry, ModelBuilder, TableMeta, TableMetaCache
from entitydb.options import DEFAULT_MAX_PARAMS, DatabaseOptions
from entitydb.query import Query
from entitydb.strategy import SqlDialectType
from entitydb.transaction import Transaction

logger = logging.getLogger(__name__)

T = TypeVar('T')

__all__ = ['DbContext']


class DbContext:
    """Owns one connection, one mapping registry and the resolved table metadata.

    Subclasses register explicit mappings in `on_model_creating`, which runs
    exactly once, before the first metadata lookup.

    Args:
        connection: `ConnectionWrapper`, DB-API or SQLAlchemy connection,
            or `DatabaseOptions`/dict to open one with `connect`
        dialect: Dialect override when it cannot be detected from the connection
        registry: Mapping registry to share between contexts
    """

    def __init__(self, connection: Any, dialect: 'SqlDialectType | str | None' = None,
                 registry: MappingRegistry | None = None):
        if isinstance(connection, DatabaseOptions | dict):
            connection = connect(connection)
        self.connection = ConnectionWrapper.wrap(connection, dialect)
        self.strategy = self.connection.strategy
        self.registry = registry if registry is not None else MappingRegistry()
        self._metas = TableMetaCache(self.registry)
        self._model_lock = threading.Lock()
        self._model_built = False
        self.batch = BatchCompiler(self.strategy, self.connection,
                                   self.connection.max_params or DEFAULT_MAX_PARAMS)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def dialect(self) -> SqlDialectType:
        return self.strategy.dialect

    def on_model_creating(self, model: ModelBuilder) -> None:
        """Register explicit entity mappings. Override in subclasses."""

    def _ensure_model(self) -> None:
        if self._model_built:
            return
        with self._model_lock:
            if self._model_built:
                return
            self.on_model_creating(ModelBuilder(self.registry))
            self._model_built = True
            logger.debug(f'{type(self).__name__} model built with {len(self.registry)} explicit mappings')

    def table_meta(self, type_: type) -> TableMeta:
        """Resolved metadata for an entity type, resolved once per context."""
        self._ensure_model()
        return self._metas.get(type_)

    def from_(self, type_: type[T]) -> Query[T]:
        """Start a query over ``type_``."""
        return Query(self, self.table_meta(type_))

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def create_table_sql(self, type_: type, if_not_exists: bool = False) -> str:
        return self.strategy.create_table_ddl(self.table_meta(type_), if_not_exists)

    def drop_table_sql(self, type_: type, if_exists: bool = False) -> str:
        return self.strategy.drop_table_ddl(self.table_meta(type_), if_exists)

    def create_table(self, type_: type) -> int:
        """Create the table for ``type_`` unless it exists."""
        return self.connection.execute(self.create_table_sql(type_, True), operation='ddl')

    def create_tables(self, *types: type) -> int:
        return sum(self.create_table(t) for t in types)

    def drop_table_if_exists(self, type_: type) -> int:
        return self.connection.execute(self.drop_table_sql(type_, True), operation='ddl')

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, entity: Any) -> int:
        """Insert one entity and populate its auto key.

        Every mapped, non-ignored column except auto keys is bound, including
        fields holding ``0``, ``False`` or None.

        Returns
            int: Inserted row count
        """
        meta = self.table_meta(type(entity))
        props = insert_properties(meta)
        if not props:
            raise UsageError(f'No columns to insert for {meta.type.__name__}')
        columns = [meta.column_for(p) for p in props]
        params = [meta.get(entity, p) for p in props]
        sql = self.strategy.build_insert_sql(meta, columns)
        single_auto = meta.single_auto_key

        with self.connection.prepare(sql, 'insert') as stmt:
            stmt.bind_all(params)
            if self.strategy.use_insert_returning() and single_auto is not None:
                rows = stmt.execute_query()
                if not rows:
                    return 0
                assign_key(meta, entity, next(iter(rows[0].values())))
                return 1
            count = stmt.execute_update()
            if single_auto is not None:
                keys = stmt.generated_keys()
                if keys:
                    assign_key(meta, entity, keys[0])
            return count

    def update(self, entity: Any) -> int:
        """Update every non-key column of one entity by its keys.

        Raises
            UsageError: If the type has no keys or a key value is None
        """
        meta = self.table_meta(type(entity))
        self.batch.check_updatable(meta)
        params = self.batch.update_params(meta, entity)
        sql = self.batch.update_sql(meta)
        with self.connection.prepare(sql, 'update') as stmt:
            return stmt.bind_all(params).execute_update()

    def delete(self, entity: Any) -> int:
        """Delete one entity by its keys.

        Raises
            UsageError: If the type has no keys or a key value is None
        """
        meta = self.table_meta(type(entity))
        values = meta.key_values(entity, 'delete')
        q = self.strategy.q
        where = ' AND '.join(f'{q(k.column)} = ?' for k in meta.keys.values())
        sql = f'DELETE FROM {q(meta.table)} WHERE {where}'
        with self.connection.prepare(sql, 'delete') as stmt:
            return stmt.bind_all(values).execute_update()

    def _batch_meta(self, entities: Iterable[Any]) -> tuple[TableMeta | None, list[Any]]:
        items = list(entities or [])
        if not items:
            return None, items
        return self.table_meta(type(items[0])), items

    def insert_all(self, entities: Iterable[Any]) -> int:
        meta, items = self._batch_meta(entities)
        return self.batch.insert_all(meta, items) if items else 0

    def update_all(self, entities: Iterable[Any]) -> int:
        meta, items = self._batch_meta(entities)
        return self.batch.update_all(meta, items) if items else 0

    def delete_all(self, entities: Iterable[Any]) -> int:
        meta, items = self._batch_meta(entities)
        return self.batch.delete_all(meta, items) if items else 0

    # ------------------------------------------------------------------
    # Raw SQL and lifecycle
    # ------------------------------------------------------------------

    def execute(self, sql: str, *params: Any) -> int:
        """Run raw SQL with ``?`` markers; returns the affected row count."""
        return self.connection.execute(sql, *params)

    def transaction(self) -> Transaction:
        return Transaction(self.connection)

    def close(self) -> None:
        self.connection.close()
