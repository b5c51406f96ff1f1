"""
Per-entity configuration.

Models stay pure ORM. Everything that customizes the generic CRUD engine for
one entity lives in an EntityConfig:

Usage:
    product_config = EntityConfig(
        model=Product,
        fetch=FetchOptions(options=[
            selectinload(Product.contacts).selectinload(Contact.address),
            selectinload(Product.metadata_),
        ]),
        path_map={"contact_email": "contacts.address.email"},
        search_fields=["id", "name"],
        timestamp_hierarchy=[TimestampNode(Contact, include=[TimestampNode(Address)])],
        immutable_paths=["demand_source.id"],
        soft_delete_status=EntityStatus.DELETED,
    )

    provider = DataProvider(product_config, database)
"""

from __future__ import annotations


from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.sql.elements import ColumnElement

from ..core.conditions import Condition, Join
from ..core.query_types import ListRequest
from ..core.resolver import PathOverride
from ..models import EntityStatus
from ..runtime.context import AuthContext
from ..runtime.permissions import (
    DEFAULT_PERMISSION_DEFINITIONS,
    PermissionDefinition,
    ReadPermissionGate,
)
from ..runtime.timestamps import TimestampNode
from ..runtime.filters import DEFAULT_SEARCH_FIELDS


DEFAULT_MAX_DEPTH = 16


# =============================================================================
# Capabilities
# =============================================================================


class Capability(Flag):
    """Operations an entity exposes. Resolved once, at construction."""
    LIST = auto()
    GET = auto()
    CREATE = auto()
    UPDATE = auto()
    DELETE = auto()

    READ = LIST | GET
    ALL = LIST | GET | CREATE | UPDATE | DELETE


# =============================================================================
# Strategies and hooks
# =============================================================================

# (request) -> order condition, replaces the default order generator
OrderStrategy = Callable[[Optional[ListRequest]], Condition]

# (complete_input, auth, existing_item, user_input) -> None, raises on invalid input
InputValidator = Callable[[dict, AuthContext, Optional[dict], dict], Awaitable[None]]

# (input, auth) -> input handed to deserialization
BeforeCreateHook = Callable[[dict, AuthContext], Awaitable[dict]]

# (created_entity, input, auth) -> entity to serialize
AfterCreateHook = Callable[[Any, dict, AuthContext], Awaitable[Any]]

# (input, id, existing_item, auth) -> input handed to deserialization
BeforeUpdateHook = Callable[[dict, Any, dict, AuthContext], Awaitable[dict]]

# (updated_entity, input, id, item_before_update, auth) -> entity to serialize
AfterUpdateHook = Callable[[Any, dict, Any, dict, AuthContext], Awaitable[Any]]

# (input, auth, existing_item) -> repository attributes
Deserializer = Callable[[dict, AuthContext, Optional[dict]], Awaitable[dict]]


@dataclass
class ProviderHooks:
    """Optional async callables around writes."""
    before_create: Optional[BeforeCreateHook] = None
    after_create: Optional[AfterCreateHook] = None
    before_update: Optional[BeforeUpdateHook] = None
    after_update: Optional[AfterUpdateHook] = None


# =============================================================================
# Configuration dataclasses
# =============================================================================


@dataclass
class FetchOptions:
    """Static part of every read of the entity."""
    where: list[ColumnElement[bool]] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)  # association paths referenced by where
    options: list[Any] = field(default_factory=list)  # loader options (selectinload, ...)


@dataclass
class EntityConfig:
    """Configuration of the CRUD engine for one entity."""
    model: type

    # Reads
    fetch: FetchOptions = field(default_factory=FetchOptions)
    default_scope: bool = True  # restrict entities with a status to REGULAR rows
    path_map: dict[str, PathOverride] = field(default_factory=dict)  # filters and sort_by
    search_fields: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))
    timestamp_hierarchy: Optional[list[TimestampNode]] = None  # None disables the latest timestamp
    order_strategy: Optional[OrderStrategy] = None

    # Permissions
    permission_definitions: list[PermissionDefinition] = field(
        default_factory=lambda: list(DEFAULT_PERMISSION_DEFINITIONS)
    )
    permission_path_map: dict[str, PathOverride] = field(default_factory=dict)
    read_permission_gate: Optional[ReadPermissionGate] = None

    # Writes
    immutable_paths: list[str] = field(default_factory=list)
    association_mapping: dict[str, str] = field(default_factory=dict)  # input key -> association
    soft_delete_status: EntityStatus = EntityStatus.ARCHIVED
    max_depth: int = DEFAULT_MAX_DEPTH
    validate_input: Optional[InputValidator] = None
    deserialize: Optional[Deserializer] = None
    hooks: ProviderHooks = field(default_factory=ProviderHooks)

    # Output
    response_schema: Optional[type] = None  # pydantic model validating serialized items

    capabilities: Capability = Capability.ALL

    @property
    def name(self) -> str:
        return self.model.__name__

    def fetch_joins(self) -> list[Join]:
        return [Join.from_string(path) for path in self.fetch.joins]

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities
