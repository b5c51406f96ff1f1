"""
Core module - entity graph, conditions, paths and errors.
"""

from __future__ import annotations

from .conditions import Condition, Join, OrderItem
from .defs import AssociationDef, AssociationKind, AttributeDef, EntityDef
from .errors import (
    BadRequestError,
    CrudError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ValidationError,
)
from .operators import OPERATOR_ALIASES, OPERATORS
from .query_types import ListRequest, ListResponse
from .registry import EntityRegistry, registry
from .resolver import PathResolver, ResolvedPath

__all__ = [
    # Conditions
    "Condition",
    "Join",
    "OrderItem",
    # Definitions
    "AssociationDef",
    "AssociationKind",
    "AttributeDef",
    "EntityDef",
    "EntityRegistry",
    "registry",
    # Paths
    "PathResolver",
    "ResolvedPath",
    "OPERATORS",
    "OPERATOR_ALIASES",
    # Requests
    "ListRequest",
    "ListResponse",
    # Errors
    "CrudError",
    "BadRequestError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "InternalServerError",
]
