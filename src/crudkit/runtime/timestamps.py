"""
Timestamp hierarchy resolver.

An entity is "updated" when it or one of its related entities is. The
hierarchy names the related entities that count:

    hierarchy = [
        TimestampNode(DemandSource),
        TimestampNode(Contact, include=[TimestampNode(Address)]),
    ]
    timestamps = TimestampsResolver(Product, hierarchy)

    timestamps.list_timestamp_columns()
    # ['Product.updated_at', 'demand_source.last_change_date',
    #  'contacts.updated_at', 'contacts.address.updated_at']

The latest timestamp of a product is then

    CAST(MAX(GREATEST(COALESCE(product.updated_at, '1970-01-01'), ...))
         OVER (PARTITION BY product.id) AS DATETIME)

and `updated_since` filters match when any of the columns does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import DateTime, func, literal, or_
from sqlalchemy.sql.elements import ColumnElement

from ..core.conditions import Condition, Join
from ..core.defs import EntityDef
from ..core.errors import (
    InvalidDateTimeFormatError,
    InvalidHierarchyError,
    InvalidOperatorError,
    InvalidUpdatedSinceFieldError,
)
from ..core.operators import apply_operator, normalize_operator
from ..core.registry import EntityRegistry, registry as default_registry
from ..core.sql import as_datetime, greatest

logger = logging.getLogger(__name__)


EPOCH = datetime(1970, 1, 1)

# Synthetic attribute set on fetched entities
LATEST_TIMESTAMP_ATTRIBUTE = "updated_at"

TIMESTAMP_PATHS = ("updated_since", "updated_at")

COMPARISON_OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte")


@dataclass
class TimestampNode:
    """A related entity whose timestamp counts for its parent."""
    model: type
    include: list[TimestampNode] = field(default_factory=list)


@dataclass(frozen=True)
class TimestampColumn:
    """One qualifying column: entity reached through path from the root."""
    path: tuple[str, ...]
    entity: EntityDef


def parse_iso_datetime(value: str, field_name: str = "updated_since") -> datetime:
    """Parse an ISO 8601 date-time (a trailing Z is accepted)."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        raise InvalidDateTimeFormatError(params={"field": field_name})
    # entity timestamps are stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class TimestampsResolver:
    """Resolve the effective last modification time of a root entity."""

    def __init__(
        self,
        model: type,
        hierarchy: Optional[Sequence[TimestampNode]] = None,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.hierarchy = list(hierarchy or [])
        self.registry = registry
        self.entity = registry.describe(model)

    def extract_association_alias(self, parent: type, child: type) -> str:
        """Name of the association leading from parent directly to child."""
        association = self.registry.describe(parent).association_to(child)
        if association is None:
            logger.error(
                f"Timestamp hierarchy of {self.entity.name}: no association "
                f"from {parent.__name__} to {child.__name__}"
            )
            raise InvalidHierarchyError(params={
                "source": parent.__name__,
                "target": child.__name__,
            })
        return association.name

    def columns(self) -> list[TimestampColumn]:
        """Qualifying entities, depth first, root first."""
        found: list[TimestampColumn] = []
        if self.entity.has_timestamps:
            found.append(TimestampColumn((), self.entity))
        self._walk(self.model, (), self.hierarchy, found)
        return found

    def _walk(
        self,
        parent: type,
        path: tuple[str, ...],
        nodes: Sequence[TimestampNode],
        found: list[TimestampColumn],
    ) -> None:
        for node in nodes:
            node_path = path + (self.extract_association_alias(parent, node.model),)
            entity = self.registry.describe(node.model)
            if entity.has_timestamps:
                found.append(TimestampColumn(node_path, entity))
            self._walk(node.model, node_path, node.include, found)

    def has_timestamps(self) -> bool:
        return bool(self.columns())

    def list_timestamp_columns(self, separator: str = ".", wrap: str = "") -> list[str]:
        """
        Qualified references of the qualifying columns.

        The root is referenced by entity name, nested entities by their
        association path joined with separator.
        """
        references: list[str] = []
        for column in self.columns():
            qualifier = separator.join(column.path) if column.path else column.entity.name
            attribute = column.entity.attributes[column.entity.updated_at]
            reference = f"{wrap}{qualifier}.{attribute.column}{wrap}"
            if reference not in references:
                references.append(reference)
        return references

    def joins(self) -> list[Join]:
        return [Join(column.path) for column in self.columns() if column.path]

    def timestamp_columns(self) -> list[ColumnElement[Any]]:
        return [
            getattr(self.registry.alias(self.model, column.path), column.entity.updated_at)
            for column in self.columns()
        ]

    def build_greatest_expression(self) -> Optional[ColumnElement[Any]]:
        """GREATEST of the null-safe columns, or the single one. Row level."""
        coalesced = [
            func.coalesce(column, literal(EPOCH, DateTime()))
            for column in self.timestamp_columns()
        ]
        if not coalesced:
            return None
        if len(coalesced) == 1:
            return coalesced[0]
        return greatest(*coalesced)

    def build_latest_timestamp_expression(self) -> Optional[ColumnElement[Any]]:
        """
        Latest timestamp of the root entity, one value per root row.

        With several qualifying columns the row level GREATEST is maxed over
        the partition of the root primary key, so joined rows fanning out
        from one entity all carry the same value.
        """
        columns = self.timestamp_columns()
        expression = self.build_greatest_expression()
        if expression is None:
            return None
        if len(columns) == 1:
            return as_datetime(expression)

        primary_key = getattr(self.model, self.entity.primary_key)
        return as_datetime(func.max(expression).over(partition_by=primary_key))

    def build_since_filter(self, value: str, operator: str = "gte", field: str = "updated_since") -> Condition:
        """OR over the qualifying columns of `<column> <operator> <value>`."""
        if not self.has_timestamps():
            raise InvalidUpdatedSinceFieldError(params={"field": field})

        operator = normalize_operator(operator)
        if operator not in COMPARISON_OPERATORS:
            raise InvalidOperatorError(params={"operator": operator})
        since = parse_iso_datetime(value, field)

        predicates = [apply_operator(column, operator, since) for column in self.timestamp_columns()]
        return Condition(where=[or_(*predicates)], joins=self.joins())
