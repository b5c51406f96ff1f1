"""
Filters condition generator.

Turns the `filter` and `q` parameters of a list request into a condition:

    filter=name ct bolt            -> product.name LIKE '%bolt%'
    filter=contacts.address.email eq a@b.c
                                   -> "contacts.address".email = 'a@b.c'
    filter=status_id in 1, 2       -> product.status_id IN ('1', '2')
    filter=updated_since gte 2024-01-01T00:00:00Z
                                   -> product.updated_at >= ... OR contacts.updated_at >= ...
    q=bolt                         -> id LIKE '%bolt%' OR name LIKE '%bolt%'
"""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional, Sequence

from sqlalchemy import String, cast, or_

from ..core.conditions import Condition
from ..core.errors import InvalidFilterParameterError
from ..core.operators import apply_operator, coerce_value, normalize_operator
from ..core.query_types import ListRequest
from ..core.registry import EntityRegistry, registry as default_registry
from ..core.resolver import PathOverride, PathResolver
from .context import AuthContext
from .timestamps import TIMESTAMP_PATHS, TimestampsResolver

logger = logging.getLogger(__name__)


DEFAULT_SEARCH_FIELDS = ("id", "name")

_WHITESPACE = re.compile(r"\s")


class FiltersGenerator:
    """
    Builds the filter condition of list requests for one model.

    Stateless: predicates and joins are collected per call.
    """

    def __init__(
        self,
        model: type,
        path_map: Optional[Mapping[str, PathOverride]] = None,
        search_fields: Optional[Sequence[str]] = None,
        timestamps: Optional[TimestampsResolver] = None,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.search_fields = tuple(DEFAULT_SEARCH_FIELDS if search_fields is None else search_fields)
        self.timestamps = timestamps
        self.resolver = PathResolver(
            model,
            path_map,
            error_class=InvalidFilterParameterError,
            registry=registry,
        )

    def generate_condition(
        self,
        auth: AuthContext,
        request: Optional[ListRequest] = None,
    ) -> Optional[Condition]:
        """Condition of all filters ANDed with the search, None without a request."""
        if request is None:
            return None

        conditions = [self.build_filter(filter_string) for filter_string in request.filter]
        if request.q:
            conditions.append(self.build_search(request.q))

        return Condition.merge(*conditions)

    def build_filter(self, filter_string: str) -> Condition:
        """Condition of one `<path> <operator> <value...>` string."""
        parts = _WHITESPACE.split(filter_string.strip())
        if len(parts) < 2 or not parts[0]:
            raise InvalidFilterParameterError(params={"filter": filter_string})

        path, operator, value = parts[0], parts[1], " ".join(parts[2:])

        if self.timestamps is not None and path in TIMESTAMP_PATHS:
            return self.timestamps.build_since_filter(value, operator, path)

        operator = normalize_operator(operator)
        resolved = self.resolver.resolve(path)
        column = self.resolver.column(resolved)
        if operator == "like" and not resolved.is_literal and resolved.field_type != "string":
            column = cast(column, String)
        coerced = coerce_value(operator, value, resolved.field_type)

        return Condition(
            where=[apply_operator(column, operator, coerced)],
            joins=resolved.joins,
        )

    def build_search(self, search: str) -> Condition:
        """OR of `<field> ct <search>` over the search fields."""
        conditions = [self.build_filter(f"{field} ct {search}") for field in self.search_fields]
        if not conditions:
            return Condition()

        merged = Condition.merge(*conditions)
        return Condition(where=[or_(*merged.where)], joins=merged.joins)
