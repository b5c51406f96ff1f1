"""
Order condition generator.

    sort_by=-updated_at, contacts.name

    ORDER BY <latest timestamp> DESC, "contacts".name ASC, product.id ASC

The primary key always closes the order so pages are stable.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

from sqlalchemy import func

from ..core.conditions import Condition, OrderItem
from ..core.errors import InvalidSortByError
from ..core.query_types import ListRequest
from ..core.registry import EntityRegistry, registry as default_registry
from ..core.resolver import PathOverride, PathResolver
from .timestamps import TIMESTAMP_PATHS, TimestampsResolver


_SORT_SEPARATOR = re.compile(r"\s*,\s*")


class OrderGenerator:
    """Builds the order of list requests for one model."""

    def __init__(
        self,
        model: type,
        path_map: Optional[Mapping[str, PathOverride]] = None,
        timestamps: Optional[TimestampsResolver] = None,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.timestamps = timestamps
        self.entity = registry.describe(model)
        self.resolver = PathResolver(
            model,
            path_map,
            error_class=InvalidSortByError,
            registry=registry,
        )

    def generate_condition(self, request: Optional[ListRequest] = None) -> Condition:
        condition = Condition()
        sort_by = request.sort_by if request is not None else None

        for term in _SORT_SEPARATOR.split(sort_by.strip()) if sort_by else []:
            if not term:
                continue
            direction = "DESC" if term.startswith("-") else "ASC"
            path = term.lstrip("-").strip()
            condition.order.append(self._order_item(path, direction, condition))

        return self.append_tiebreaker(condition)

    def append_tiebreaker(self, condition: Condition) -> Condition:
        """Close the order with (primary key, ASC)."""
        primary_key = getattr(self.model, self.entity.primary_key)
        condition.order.append(OrderItem(primary_key, "ASC"))
        return condition

    def _order_item(self, path: str, direction: str, condition: Condition) -> OrderItem:
        if self.timestamps is not None and path in TIMESTAMP_PATHS and self.timestamps.has_timestamps():
            condition.joins.extend(self.timestamps.joins())
            # latest joined row in both directions
            return OrderItem(
                self.timestamps.build_greatest_expression(),
                direction,
                aggregate=True,
                aggregate_function=func.max,
            )

        resolved = self.resolver.resolve(path)
        condition.joins.extend(resolved.joins)
        return OrderItem(
            self.resolver.column(resolved),
            direction,
            aggregate=bool(resolved.associations) or resolved.is_literal,
        )
