"""
Service module - utilities for building crudkit services.

Provides:
- create_crud_app: Factory for creating FastAPI service apps
- create_crud_router: Factory for the CRUD routes of one entity
- Database handle (init_database, get_database, close_database)
- Settings
"""

from __future__ import annotations

from .settings import Settings, get_settings
from .database import (
    Database,
    close_database,
    get_database,
    init_database,
    is_database_initialized,
)
from .router import AUTH_METADATA_HEADER, create_crud_router, get_auth_context
from .app import HealthcheckLogFilter, configure_logging, create_crud_app

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Database
    "Database",
    "init_database",
    "get_database",
    "close_database",
    "is_database_initialized",
    # Routes
    "AUTH_METADATA_HEADER",
    "create_crud_router",
    "get_auth_context",
    # App factory
    "create_crud_app",
    "configure_logging",
    "HealthcheckLogFilter",
]
