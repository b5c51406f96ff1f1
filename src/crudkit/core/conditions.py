"""
Declarative query conditions produced by the condition generators.

A Condition is a bag of predicates, joins and order items. Generators never
build statements themselves; the repository merges their conditions and
turns the result into a SELECT.

Joins are identified by their association path from the root entity, so two
generators asking for the same path produce equal Join values and the merge
keeps only one of them.

Usage:
    permissions = Condition(where=[...], joins=[Join(("market_place",))])
    filters = Condition(where=[...], joins=[Join(("market_place",))])

    merged = Condition.merge(permissions, filters)
    merged.joins   # [Join(path=('market_place',))]
"""

from __future__ import annotations


from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal, Optional

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement


Direction = Literal["ASC", "DESC"]


@dataclass(frozen=True)
class Join:
    """Outer join along an association path from the root entity."""
    path: tuple[str, ...]

    @classmethod
    def from_string(cls, path: str) -> Join:
        return cls(tuple(path.split(".")))

    def prefixes(self) -> list[Join]:
        """All joins needed to reach this one, outermost first (a.b -> a, a.b)."""
        return [Join(self.path[:i]) for i in range(1, len(self.path) + 1)]

    def __str__(self) -> str:
        return ".".join(self.path)


@dataclass
class OrderItem:
    """One ORDER BY term."""
    expression: ColumnElement[Any]
    direction: Direction = "ASC"
    # True when the expression can differ between the joined rows of one
    # entity (nested column, literal, timestamp). Grouped queries wrap such
    # terms in aggregate_function, MIN (ASC) / MAX (DESC) when unset.
    aggregate: bool = False
    aggregate_function: Optional[Callable[[Any], ColumnElement[Any]]] = None


@dataclass
class Condition:
    """Predicates (ANDed), joins and order produced by one generator."""
    where: list[ColumnElement[bool]] = field(default_factory=list)
    joins: list[Join] = field(default_factory=list)
    order: list[OrderItem] = field(default_factory=list)
    options: list[Any] = field(default_factory=list)  # loader options for full fetches

    @property
    def predicate(self) -> Optional[ColumnElement[bool]]:
        """Single predicate, or None when there is nothing to filter on."""
        if not self.where:
            return None
        if len(self.where) == 1:
            return self.where[0]
        return and_(*self.where)

    @property
    def is_empty(self) -> bool:
        return not (self.where or self.joins or self.order or self.options)

    def expanded_joins(self) -> list[Join]:
        """Joins including every intermediate hop, de-duplicated, outermost first."""
        return unique_joins(
            prefix for join in self.joins for prefix in join.prefixes()
        )

    @classmethod
    def merge(cls, *conditions: Optional[Condition]) -> Condition:
        """
        Merge conditions in order.

        Predicates are concatenated (and later ANDed), joins de-duplicated by
        path, order items and loader options concatenated.
        """
        merged = cls()
        for condition in conditions:
            if condition is None:
                continue
            merged.where.extend(condition.where)
            merged.joins.extend(condition.joins)
            merged.order.extend(condition.order)
            merged.options.extend(condition.options)
        merged.joins = unique_joins(merged.joins)
        return merged


def unique_joins(joins: Iterable[Join]) -> list[Join]:
    """De-duplicate joins keeping first occurrence order."""
    seen: set[Join] = set()
    result: list[Join] = []
    for join in joins:
        if join not in seen:
            seen.add(join)
            result.append(join)
    return result
