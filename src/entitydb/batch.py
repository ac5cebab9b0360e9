"""
Batch statement compiler.

Bulk insert, update and delete for a homogeneous collection of entities,
partitioned so no statement binds more than ``max_params`` parameters:

- insert: one multi-row ``INSERT ... VALUES (...), (...)`` per chunk, with
  generated keys assigned back to the entities in input order when the type
  has a single auto key,
- update: one ``executemany`` of the keyed UPDATE per chunk,
- delete: ``WHERE pk IN (...)`` for a single key, OR-ed AND groups for a
  composite key.
"""
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from more_itertools import chunked

from entitydb.exceptions import UsageError
from entitydb.mapping import TableMeta
from entitydb.options import DEFAULT_MAX_PARAMS
from entitydb.sql import make_placeholders
from entitydb.types import TypeConverter

if TYPE_CHECKING:
    from entitydb.connection import ConnectionWrapper
    from entitydb.strategy import DialectStrategy

logger = logging.getLogger(__name__)

__all__ = [
    'BatchCompiler',
    'insert_properties',
    'update_properties',
    'rows_per_chunk',
]


def rows_per_chunk(max_params: int, params_per_row: int) -> int:
    """``floor(max_params / params_per_row)``, at least 1."""
    return max(1, max_params // max(1, params_per_row))


def insert_properties(meta: TableMeta) -> list[str]:
    """Mapped properties bound by INSERT: everything except auto keys."""
    autos = {k.property for k in meta.keys.values() if k.auto}
    return [p for p in meta.mapped_properties() if p not in autos]


def update_properties(meta: TableMeta) -> list[str]:
    """Mapped properties assigned by UPDATE: everything except keys."""
    return [p for p in meta.mapped_properties() if p not in meta.keys]


def assign_key(meta: TableMeta, entity: Any, value: Any) -> None:
    """Write a generated value into the entity's single auto key."""
    key = meta.single_auto_key
    accessor = meta.prop_to_field[key.property]
    meta.set(entity, key.property, TypeConverter.from_db(value, accessor.type))


class BatchCompiler:
    """Compiles and executes chunked bulk statements on one connection.
    """

    def __init__(self, strategy: 'DialectStrategy', connection: 'ConnectionWrapper',
                 max_params: int = DEFAULT_MAX_PARAMS):
        if max_params < 1:
            raise ValueError('max_params must be positive')
        self.strategy = strategy
        self.connection = connection
        self.max_params = max_params

    def _check_types(self, meta: TableMeta, entities: list[Any]) -> None:
        for entity in entities:
            if type(entity) is not meta.type:
                raise UsageError(
                    f'Batch of {meta.type.__name__} contains a {type(entity).__name__}')

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def insert_all(self, meta: TableMeta, entities: Iterable[Any]) -> int:
        """Insert every entity; returns the number of inserted rows.

        Args:
            meta: Metadata of the entity type
            entities: Entities of exactly that type

        Returns
            int: Inserted row count, 0 for an empty collection

        Raises
            UsageError: On mixed types, no insertable column or a missing
                non-generated key value
        """
        items = list(entities)
        if not items:
            return 0
        self._check_types(meta, items)

        props = insert_properties(meta)
        if not props:
            raise UsageError(f'No columns to insert for {meta.type.__name__}')
        columns = [meta.column_for(p) for p in props]
        manual_keys = [k.property for k in meta.keys.values() if not k.auto]

        per_chunk = rows_per_chunk(self.max_params, len(props))
        single_auto = meta.single_auto_key
        returning = self.strategy.use_insert_returning() and single_auto is not None

        for entity in items:
            for prop in manual_keys:
                if meta.get(entity, prop) is None:
                    raise UsageError(
                        f'insert: primary key {prop!r} of {meta.type.__name__} is None')

        total = 0
        for chunk in chunked(items, per_chunk):
            params = [meta.get(entity, p) for entity in chunk for p in props]
            sql = self.strategy.build_multi_insert_sql(meta, columns, len(chunk))
            with self.connection.prepare(sql, 'insert') as stmt:
                stmt.bind_all(params)
                if returning:
                    rows = stmt.execute_query()
                    for entity, row in zip(chunk, rows):
                        assign_key(meta, entity, next(iter(row.values())))
                    total += len(rows)
                    continue
                total += stmt.execute_update()
                if single_auto is not None:
                    for entity, key in zip(chunk, stmt.generated_keys()):
                        assign_key(meta, entity, key)
        logger.debug(f'Inserted {total} {meta.type.__name__} rows in chunks of {per_chunk}')
        return total

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_sql(self, meta: TableMeta) -> str:
        """``UPDATE t SET c = ?, ... WHERE k1 = ? AND ...`` for one entity."""
        q = self.strategy.q
        sets = ', '.join(f'{q(meta.column_for(p))} = ?' for p in update_properties(meta))
        where = ' AND '.join(f'{q(k.column)} = ?' for k in meta.keys.values())
        return f'UPDATE {q(meta.table)} SET {sets} WHERE {where}'

    def update_params(self, meta: TableMeta, entity: Any) -> list[Any]:
        keys = meta.key_values(entity, 'update')
        return [meta.get(entity, p) for p in update_properties(meta)] + keys

    def check_updatable(self, meta: TableMeta) -> None:
        if not meta.keys:
            raise UsageError(f'update: {meta.type.__name__} has no primary key')
        if not update_properties(meta):
            raise UsageError(f'No columns in SET for {meta.type.__name__}')

    def update_all(self, meta: TableMeta, entities: Iterable[Any]) -> int:
        """Update every entity by its keys; returns the summed row count.

        Raises
            UsageError: On mixed types, a keyless type or a None key value
        """
        items = list(entities)
        if not items:
            return 0
        self._check_types(meta, items)
        self.check_updatable(meta)

        sql = self.update_sql(meta)
        per_row = len(update_properties(meta)) + len(meta.keys)
        per_chunk = rows_per_chunk(self.max_params, per_row)

        rows = [self.update_params(meta, entity) for entity in items]

        total = 0
        for batch in chunked(rows, per_chunk):
            with self.connection.prepare(sql, 'update') as stmt:
                for params in batch:
                    stmt.bind_all(params).add_batch()
                total += stmt.execute_batch()
        logger.debug(f'Updated {total} {meta.type.__name__} rows')
        return total

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_all(self, meta: TableMeta, entities: Iterable[Any]) -> int:
        """Delete every entity by its keys; returns the deleted row count.

        Raises
            UsageError: On mixed types, a keyless type or a None key value
        """
        items = list(entities)
        if not items:
            return 0
        self._check_types(meta, items)
        if not meta.keys:
            raise UsageError(f'delete: {meta.type.__name__} has no primary key')
        keys = [meta.key_values(entity, 'delete') for entity in items]

        if len(meta.keys) == 1:
            total = self._delete_by_single_key(meta, [k[0] for k in keys])
        else:
            total = self._delete_by_composite_key(meta, keys)
        logger.debug(f'Deleted {total} {meta.type.__name__} rows')
        return total

    def _delete_by_single_key(self, meta: TableMeta, ids: list[Any]) -> int:
        q = self.strategy.q
        key = next(iter(meta.keys.values()))
        total = 0
        for chunk in chunked(ids, self.max_params):
            sql = (f'DELETE FROM {q(meta.table)} WHERE {q(key.column)}'
                   f' IN ({make_placeholders(len(chunk))})')
            with self.connection.prepare(sql, 'delete') as stmt:
                total += stmt.bind_all(chunk).execute_update()
        return total

    def _delete_by_composite_key(self, meta: TableMeta, keys: list[list[Any]]) -> int:
        q = self.strategy.q
        group = '(' + ' AND '.join(f'{q(k.column)} = ?' for k in meta.keys.values()) + ')'
        per_chunk = rows_per_chunk(self.max_params, len(meta.keys))
        total = 0
        for chunk in chunked(keys, per_chunk):
            params = [value for values in chunk for value in values]
            sql = f'DELETE FROM {q(meta.table)} WHERE ' + ' OR '.join([group] * len(chunk))
            with self.connection.prepare(sql, 'delete') as stmt:
                total += stmt.bind_all(params).execute_update()
        return total
