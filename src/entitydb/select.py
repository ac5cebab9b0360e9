"""
SELECT-list description for `Query.select`.

    q.select(lambda s: s.col('name').sum('total', entity=Order).as_('spent'))
"""
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from entitydb.exceptions import UsageError

__all__ = ['AggregateFunction', 'SelectionKind', 'SelectionPart', 'Selector']


class SelectionKind(Enum):
    COLUMN = 'column'
    STAR = 'star'
    AGGREGATE = 'aggregate'
    COMPUTED = 'computed'


class AggregateFunction(str, Enum):
    SUM = 'SUM'
    AVG = 'AVG'
    COUNT = 'COUNT'
    MIN = 'MIN'
    MAX = 'MAX'


@dataclass(frozen=True)
class SelectionPart:
    """One entry of a projection, emitted in list order.
    """
    kind: SelectionKind
    entity: type | None = None
    property: str | None = None
    alias: str | None = None
    function: AggregateFunction | None = None
    distinct: bool = False
    expression: str | None = None

    def render(self, column_ref: Callable[[type | None, str], str],
               star_ref: Callable[[type | None], str],
               quote: Callable[[str], str]) -> str:
        """Render this part as SELECT-list text.

        Args:
            column_ref: Qualified, quoted column for (entity, property)
            star_ref: Wildcard for an entity, ``alias.*`` or ``*``
            quote: Identifier quoting for AS aliases

        Returns
            str: SQL fragment
        """
        if self.kind is SelectionKind.STAR:
            return star_ref(self.entity)
        if self.kind is SelectionKind.COMPUTED:
            return self.expression
        if self.kind is SelectionKind.COLUMN:
            text = column_ref(self.entity, self.property)
        else:
            inner = '*' if self.property is None else column_ref(self.entity, self.property)
            distinct = 'DISTINCT ' if self.distinct else ''
            text = f'{self.function.value}({distinct}{inner})'
        if self.alias:
            text = f'{text} AS {quote(self.alias)}'
        return text


class Selector:
    """Collects `SelectionPart`s for a query projection."""

    def __init__(self):
        self.parts: list[SelectionPart] = []

    def _add(self, part: SelectionPart) -> 'Selector':
        self.parts.append(part)
        return self

    def col(self, prop: str, entity: type | None = None, alias: str | None = None) -> 'Selector':
        return self._add(SelectionPart(SelectionKind.COLUMN, entity, prop, alias))

    def all(self, entity: type | None = None) -> 'Selector':
        return self._add(SelectionPart(SelectionKind.STAR, entity))

    def computed(self, expression: str, alias: str | None = None) -> 'Selector':
        """Raw expression text, emitted verbatim. The caller owns its safety."""
        text = expression if alias is None else f'{expression} AS {alias}'
        return self._add(SelectionPart(SelectionKind.COMPUTED, expression=text))

    def _aggregate(self, function: AggregateFunction, prop: str | None,
                   entity: type | None, distinct: bool = False) -> 'Selector':
        return self._add(SelectionPart(SelectionKind.AGGREGATE, entity, prop,
                                       function=function, distinct=distinct))

    def sum(self, prop: str, entity: type | None = None) -> 'Selector':
        return self._aggregate(AggregateFunction.SUM, prop, entity)

    def avg(self, prop: str, entity: type | None = None) -> 'Selector':
        return self._aggregate(AggregateFunction.AVG, prop, entity)

    def max(self, prop: str, entity: type | None = None) -> 'Selector':
        return self._aggregate(AggregateFunction.MAX, prop, entity)

    def min(self, prop: str, entity: type | None = None) -> 'Selector':
        return self._aggregate(AggregateFunction.MIN, prop, entity)

    def count(self, prop: str | None = None, entity: type | None = None) -> 'Selector':
        """``COUNT(*)`` without a property, else ``COUNT(column)``."""
        return self._aggregate(AggregateFunction.COUNT, prop, entity)

    def count_distinct(self, prop: str, entity: type | None = None) -> 'Selector':
        return self._aggregate(AggregateFunction.COUNT, prop, entity, distinct=True)

    def as_(self, alias: str) -> 'Selector':
        """Alias the most recent column, aggregate or computed part.

        Raises
            UsageError: If there is no part that can carry an alias
        """
        for i in range(len(self.parts) - 1, -1, -1):
            part = self.parts[i]
            if part.kind is SelectionKind.STAR:
                continue
            if part.kind is SelectionKind.COMPUTED:
                self.parts[i] = replace(part, expression=f'{part.expression} AS {alias}')
            else:
                self.parts[i] = replace(part, alias=alias)
            return self
        raise UsageError('as_() needs a preceding column, aggregate or computed expression')

    def __iter__(self) -> Any:
        return iter(self.parts)

    def __len__(self) -> int:
        return len(self.parts)
