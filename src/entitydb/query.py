"""
Fluent query compiler.

A `Query` accumulates a WHERE text buffer with its positional parameters,
joins, a projection, ORDER BY terms and LIMIT/OFFSET, and compiles them into
one SELECT (or UPDATE/DELETE) with ``?`` markers on a terminal call. The
dialect strategy handles quoting and pagination.

    users = (ctx.from_(User)
             .alias('u')
             .left_join(Order, 'o', lambda on: on.eq('id', 'user_id'))
             .filter(lambda f: f.equals('status', 'active')
                                .and_().open()
                                .greater('total', 10, entity=Order).or_()
                                .equals('vip', True)
                                .close())
             .order_by('name')
             .limit(10)
             .to_list())

A query is single use: after a terminal call (`to_list`, `first`,
`to_map_list`, `to_dataframe`, `count`, `update`, `delete`) any further call
raises `UsageError`. The introspection methods (`to_sql`,
`to_sql_with_params`, `update_sql`, `delete_sql`) leave it usable.
"""
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import pandas as pd

from entitydb.exceptions import UsageError
from entitydb.mapping import TableMeta, to_snake_case
from entitydb.rows import dto_meta, map_rows
from entitydb.select import Selector, SelectionPart

if TYPE_CHECKING:
    from entitydb.context import DbContext

logger = logging.getLogger(__name__)

T = TypeVar('T')

__all__ = ['Query', 'Filters', 'On', 'SetBuilder']


@dataclass
class _Join:
    meta: TableMeta
    alias: str
    kind: str
    on_sql: str


def _needs_and(buffer: str) -> bool:
    if not buffer:
        return False
    text = buffer.strip()
    return not (text.endswith('(') or text.endswith('AND') or text.endswith('OR'))


def _column_name(meta: TableMeta, prop: str) -> str:
    return meta.prop_to_column.get(prop) or to_snake_case(prop)


def _format_params(sql: str, params: list[Any]) -> str:
    if not params:
        return sql
    dump = ', '.join(f'?{i}={v}' for i, v in enumerate(params, start=1))
    return f'{sql}\n[Params] {dump}'


class Query(Generic[T]):
    """Single-use query builder over one base entity type.
    """

    def __init__(self, ctx: 'DbContext', meta: TableMeta):
        self.ctx = ctx
        self.meta = meta
        self.strategy = ctx.strategy
        self.where = ''
        self.params: list[Any] = []
        self._predicates = 0
        self._order_bys: list[str] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._base_alias: str | None = None
        self._joins: list[_Join] = []
        self._aliases: dict[type, tuple[TableMeta, str | None]] = {meta.type: (meta, None)}
        self._selection: list[SelectionPart] = []
        self._consumed = False

    def _check_open(self) -> None:
        if self._consumed:
            raise UsageError(f'Query on {self.meta.type.__name__} was already executed')

    def _consume(self) -> None:
        self._check_open()
        self._consumed = True

    # ------------------------------------------------------------------
    # Fluent API
    # ------------------------------------------------------------------

    def alias(self, name: str) -> 'Query[T]':
        """Alias the base table in the FROM clause."""
        self._check_open()
        self._base_alias = name
        self._aliases[self.meta.type] = (self.meta, name)
        return self

    def filter(self, fn: Callable[['Filters'], Any]) -> 'Query[T]':
        self._check_open()
        fn(Filters(self))
        return self

    def join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'JOIN', fn)

    def inner_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'INNER JOIN', fn)

    def left_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'LEFT JOIN', fn)

    def right_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'RIGHT JOIN', fn)

    def left_inner_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'LEFT INNER JOIN', fn)

    def right_inner_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'RIGHT INNER JOIN', fn)

    def outer_join(self, type_: type, alias: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        return self._add_join(type_, alias, 'OUTER JOIN', fn)

    def select(self, fn: Callable[[Selector], Any]) -> 'Query[T]':
        """Replace the default ``*`` projection with explicit parts."""
        self._check_open()
        selector = Selector()
        fn(selector)
        self._selection.extend(selector.parts)
        return self

    def order_by(self, prop: str, asc: bool = True, entity: type | None = None) -> 'Query[T]':
        self._check_open()
        direction = 'ASC' if asc else 'DESC'
        self._order_bys.append(f'{self._column_ref(entity, prop)} {direction}')
        return self

    def then_by(self, prop: str, asc: bool = True, entity: type | None = None) -> 'Query[T]':
        return self.order_by(prop, asc, entity)

    def limit(self, n: int | None) -> 'Query[T]':
        self._check_open()
        self._limit = n
        return self

    def offset(self, n: int | None) -> 'Query[T]':
        self._check_open()
        self._offset = n
        return self

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    def to_list(self, dto: type | None = None) -> list[Any]:
        """Execute and map rows to entities, or to ``dto`` instances by column label."""
        self._consume()
        rows = self._fetch(self._build_select())
        meta = self.meta if dto is None else dto_meta(dto, self.ctx.registry)
        return map_rows(meta, rows)

    def first(self) -> T | None:
        """Execute with the limit clamped to 1; None when nothing matches."""
        if self._limit is None or self._limit > 1:
            self._limit = 1
        items = self.to_list()
        return items[0] if items else None

    def to_map_list(self) -> list[dict[str, Any]]:
        """Execute and return rows as dicts keyed by column label."""
        self._consume()
        return self._fetch(self._build_select())

    def to_dataframe(self) -> pd.DataFrame:
        """Execute and return the rows as a DataFrame, columns in SELECT order."""
        self._consume()
        return pd.DataFrame.from_records(self._fetch(self._build_select()))

    def count(self) -> int:
        """Number of rows the query matches, honoring LIMIT/OFFSET when set."""
        self._consume()
        rows = self._fetch(self._build_count())
        if not rows:
            return 0
        value = next(iter(rows[0].values()))
        return int(value or 0)

    def update(self, fn: Callable[['SetBuilder'], Any]) -> int:
        """Execute ``UPDATE t SET ... WHERE <filter>``; returns the affected row count.

        Raises
            UsageError: If the WHERE clause or the SET list is empty
        """
        self._check_open()
        sql, params = self._build_update(fn)
        self._consume()
        with self.ctx.connection.prepare(sql, 'update') as stmt:
            return stmt.bind_all(params).execute_update()

    def delete(self) -> int:
        """Execute ``DELETE FROM t WHERE <filter>``; returns the affected row count.

        Raises
            UsageError: If the WHERE clause is empty
        """
        self._check_open()
        sql = self._build_delete()
        self._consume()
        with self.ctx.connection.prepare(sql, 'delete') as stmt:
            return stmt.bind_all(self.params).execute_update()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        self._check_open()
        return self._build_select()

    def to_sql_with_params(self) -> str:
        """The SELECT plus a ``[Params] ?1=v, ?2=v`` line, for diagnostics."""
        self._check_open()
        return _format_params(self._build_select(), self.params)

    def update_sql(self, fn: Callable[['SetBuilder'], Any]) -> str:
        self._check_open()
        sql, params = self._build_update(fn)
        return _format_params(sql, params)

    def delete_sql(self) -> str:
        self._check_open()
        return _format_params(self._build_delete(), self.params)

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _fetch(self, sql: str) -> list[dict[str, Any]]:
        logger.debug(f'Query on {self.meta.type.__name__}: {sql}')
        return self.ctx.connection.query(sql, *self.params)

    def _from_clause(self) -> str:
        q = self.strategy.q
        text = f' FROM {q(self.meta.table)}'
        if self._base_alias:
            text += f' {q(self._base_alias)}'
        for j in self._joins:
            text += f' {j.kind} {q(j.meta.table)} {q(j.alias)} ON {j.on_sql}'
        if self.where:
            text += f' WHERE {self.where}'
        return text

    def _select_clause(self) -> str:
        q = self.strategy.q
        if not self._selection:
            return f'{q(self._base_alias)}.*' if self._base_alias else '*'
        return ', '.join(part.render(self._column_ref, self._star_ref, q)
                         for part in self._selection)

    def _build_select(self) -> str:
        sql = f'SELECT {self._select_clause()}{self._from_clause()}'
        order_by = None
        if self._order_bys:
            order_by = ', '.join(self._order_bys)
            sql += f' ORDER BY {order_by}'
        return self.strategy.paginate(sql, order_by, self._limit, self._offset)

    def _build_count(self) -> str:
        if self._limit is None and self._offset is None:
            return f'SELECT COUNT(*) AS {self.strategy.q("count")}{self._from_clause()}'
        inner = self._build_select()
        return f'SELECT COUNT(*) AS {self.strategy.q("count")} FROM ({inner}) {self.strategy.q("sub")}'

    def _build_update(self, fn: Callable[['SetBuilder'], Any]) -> tuple[str, list[Any]]:
        if fn is None:
            raise UsageError('update() needs a SET builder function')
        if not self._predicates:
            raise UsageError('WHERE must not be empty for update()')
        builder = SetBuilder(self)
        fn(builder)
        if not builder.sets:
            raise UsageError('No columns in SET')
        sql = (f'UPDATE {self.strategy.q(self.meta.table)} SET {", ".join(builder.sets)}'
               f' WHERE {self.where}')
        return sql, [*builder.params, *self.params]

    def _build_delete(self) -> str:
        if not self._predicates:
            raise UsageError('WHERE must not be empty for delete()')
        return f'DELETE FROM {self.strategy.q(self.meta.table)} WHERE {self.where}'

    def _add_join(self, type_: type, alias: str, kind: str, fn: Callable[['On'], Any]) -> 'Query[T]':
        self._check_open()
        if not alias:
            raise UsageError(f'Join alias must be provided for {type_.__name__}')
        meta = self.ctx.table_meta(type_)
        self._aliases[type_] = (meta, alias)
        on = On(self, meta, alias)
        fn(on)
        self._joins.append(_Join(meta, alias, kind, on.sql))
        return self

    def _meta_for(self, entity: type | None) -> tuple[TableMeta, str | None]:
        if entity is None:
            return self.meta, self._base_alias
        try:
            return self._aliases[entity]
        except KeyError:
            raise UsageError(f'Type not present in FROM/JOIN: {entity.__name__}') from None

    def _column_ref(self, entity: type | None, prop: str) -> str:
        """``[alias.]"column"`` for a property of the base or a joined entity."""
        meta, alias = self._meta_for(entity)
        return self._qualify(meta, alias, prop)

    def _qualify(self, meta: TableMeta, alias: str | None, prop: str) -> str:
        q = self.strategy.q
        column = q(_column_name(meta, prop))
        return f'{q(alias)}.{column}' if alias else column

    def _star_ref(self, entity: type | None) -> str:
        _, alias = self._meta_for(entity)
        return f'{self.strategy.q(alias)}.*' if alias else '*'

    def _append_condition(self, column: str, op: str, value: Any) -> None:
        """Append ``column op ?`` with auto-AND, rewriting NULL and empty IN."""
        self._predicates += 1
        if _needs_and(self.where):
            self.where += ' AND '
        if op == 'IN':
            values = list(value or [])
            if not values:
                self.where += f'{column} IN (SELECT 1 WHERE 1=0)'
                return
            markers = ', '.join('?' * len(values))
            self.where += f'{column} IN ({markers})'
            self.params.extend(values)
        elif value is None:
            if op == '=':
                self.where += f'{column} IS NULL'
            elif op == '<>':
                self.where += f'{column} IS NOT NULL'
            else:
                self.where += f'{column} {op} NULL'
        else:
            self.where += f'{column} {op} ?'
            self.params.append(value)


class Filters:
    """WHERE builder passed to `Query.filter`.

    Comparisons on a joined entity pass ``entity=Type``. Consecutive
    comparisons are joined with AND unless an explicit `and_`, `or_` or
    `open` precedes them.
    """

    def __init__(self, query: Query):
        self.query = query

    def _op(self, prop: str, op: str, value: Any, entity: type | None) -> 'Filters':
        self.query._append_condition(self.query._column_ref(entity, prop), op, value)
        return self

    def equals(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '=', value, entity)

    def not_equals(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '<>', value, entity)

    def greater(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '>', value, entity)

    def greater_or_equals(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '>=', value, entity)

    def less(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '<', value, entity)

    def less_or_equals(self, prop: str, value: Any, entity: type | None = None) -> 'Filters':
        return self._op(prop, '<=', value, entity)

    def like(self, prop: str, pattern: str, entity: type | None = None) -> 'Filters':
        return self._op(prop, 'LIKE', pattern, entity)

    def in_(self, prop: str, values: Iterable[Any], entity: type | None = None) -> 'Filters':
        return self._op(prop, 'IN', values, entity)

    def and_(self) -> 'Filters':
        self.query.where += ' AND '
        return self

    def or_(self) -> 'Filters':
        self.query.where += ' OR '
        return self

    def open(self) -> 'Filters':
        self.query.where += '('
        return self

    def close(self) -> 'Filters':
        self.query.where += ')'
        return self


class On:
    """ON clause builder for one join.

    The left operand names a property of the base entity (or ``entity=`` for
    an earlier join); the right operand a property of the joined entity.
    """

    def __init__(self, query: Query, meta: TableMeta, alias: str):
        self.query = query
        self.meta = meta
        self.alias = alias
        self.sql = ''

    def _bin(self, left: str, op: str, right: str, entity: type | None) -> 'On':
        if _needs_and(self.sql):
            self.sql += ' AND '
        lhs = self.query._column_ref(entity, left)
        rhs = self.query._qualify(self.meta, self.alias, right)
        self.sql += f'{lhs} {op} {rhs}'
        return self

    def eq(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '=', right, entity)

    def ne(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '<>', right, entity)

    def gt(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '>', right, entity)

    def lt(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '<', right, entity)

    def ge(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '>=', right, entity)

    def le(self, left: str, right: str, entity: type | None = None) -> 'On':
        return self._bin(left, '<=', right, entity)

    def and_(self) -> 'On':
        self.sql += ' AND '
        return self

    def or_(self) -> 'On':
        self.sql += ' OR '
        return self

    def open(self) -> 'On':
        self.sql += '('
        return self

    def close(self) -> 'On':
        self.sql += ')'
        return self


class SetBuilder:
    """SET list for `Query.update`; its parameters bind before the WHERE parameters."""

    def __init__(self, query: Query):
        self.query = query
        self.sets: list[str] = []
        self.params: list[Any] = []

    def set(self, prop: str, value: Any) -> 'SetBuilder':
        column = _column_name(self.query.meta, prop)
        self.sets.append(f'{self.query.strategy.q(column)} = ?')
        self.params.append(value)
        return self
