"""
Runtime module - condition generators, validation and serialization.

Repository and DataProvider live in runtime.repository and
runtime.dataprovider and are exported from the crudkit package.
"""

from __future__ import annotations

from .context import AuthContext
from .filters import FiltersGenerator
from .order import OrderGenerator
from .permissions import PermissionDefinition, PermissionsManager
from .serializer import Serializer, to_dict
from .timestamps import TimestampNode, TimestampsResolver
from .validator import Validator

__all__ = [
    "AuthContext",
    "FiltersGenerator",
    "OrderGenerator",
    "PermissionDefinition",
    "PermissionsManager",
    "Serializer",
    "to_dict",
    "TimestampNode",
    "TimestampsResolver",
    "Validator",
]
