"""
crudkit - CRUD API scaffolding over SQLAlchemy and FastAPI.

Given SQLAlchemy models and one EntityConfig per entity, crudkit serves
list/get/create/update/delete with permission scoping, query string
filters, sorting, pagination, validation and nested graph writes.

Usage:
    from crudkit import DataProvider, EntityConfig, create_crud_app

    products = DataProvider(EntityConfig(model=Product))
    app = create_crud_app("products", {"/products": products})
"""

from __future__ import annotations

from .core import (
    AssociationKind,
    BadRequestError,
    Condition,
    CrudError,
    ForbiddenError,
    InternalServerError,
    Join,
    ListRequest,
    ListResponse,
    NotFoundError,
    OrderItem,
    PathResolver,
    ValidationError,
    registry,
)
from .models import Base, EntityModel, EntityStatus, Info, Status
from .runtime import (
    AuthContext,
    FiltersGenerator,
    OrderGenerator,
    PermissionDefinition,
    PermissionsManager,
    Serializer,
    TimestampNode,
    TimestampsResolver,
    Validator,
)
from .viewsets import Capability, EntityConfig, FetchOptions, ProviderHooks
from .service import (
    Database,
    Settings,
    close_database,
    create_crud_app,
    create_crud_router,
    get_database,
    init_database,
)
from .runtime.repository import Repository
from .runtime.dataprovider import DataProvider

__version__ = "0.1.0"

__all__ = [
    # Core
    "AssociationKind",
    "Condition",
    "Join",
    "OrderItem",
    "PathResolver",
    "ListRequest",
    "ListResponse",
    "registry",
    # Errors
    "CrudError",
    "BadRequestError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "InternalServerError",
    # Models
    "Base",
    "EntityModel",
    "EntityStatus",
    "Info",
    "Status",
    # Runtime
    "AuthContext",
    "FiltersGenerator",
    "OrderGenerator",
    "PermissionDefinition",
    "PermissionsManager",
    "Serializer",
    "TimestampNode",
    "TimestampsResolver",
    "Validator",
    "Repository",
    "DataProvider",
    # Configuration
    "Capability",
    "EntityConfig",
    "FetchOptions",
    "ProviderHooks",
    # Service
    "Database",
    "Settings",
    "init_database",
    "get_database",
    "close_database",
    "create_crud_app",
    "create_crud_router",
]
