"""
Data provider - the five CRUD operations of one entity.

Each operation checks permissions first, then validates, runs hooks,
calls the repository and serializes the result. Failures that are not
already a CrudError are logged and wrapped into the UnableTo* error of the
operation; CrudErrors pass through untouched.

Usage:
    provider = DataProvider(product_config, database)

    items, count = await provider.get_list(auth, ListRequest(page_size=10))
    item = await provider.create_item(auth, {"name": "Bolt", "market_place": {"id": 17}})
    item = await provider.update_item(auth, item["id"], {"name": "Nut"}, is_partial=True)
    item = await provider.delete_item(auth, item["id"])
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from ..core.errors import (
    CrudError,
    UnableToCreateError,
    UnableToDeleteError,
    UnableToGetError,
    UnableToListError,
    UnableToUpdateError,
)
from ..core.query_types import ListRequest
from ..core.utils import deep_merge
from ..service.database import Database
from ..viewsets.base import Capability, EntityConfig
from .context import AuthContext
from .repository import Repository
from .serializer import Serializer
from .validator import Validator

logger = logging.getLogger(__name__)


class DataProvider:
    """
    Orchestrates the CRUD operations of one entity.

    Args:
        config: Entity configuration
        database: Database handle (process-wide handle when omitted)
        repository, serializer, validator: Replacements of the defaults
            built from config
    """

    def __init__(
        self,
        config: EntityConfig,
        database: Optional[Database] = None,
        *,
        repository: Optional[Repository] = None,
        serializer: Optional[Serializer] = None,
        validator: Optional[Validator] = None,
    ):
        self.config = config
        self.repository = repository or Repository(config, database)
        self.serializer = serializer or Serializer(config.response_schema)
        self.validator = validator or Validator(
            config.model,
            immutable_paths=config.immutable_paths,
            association_mapping=config.association_mapping,
        )
        self.permissions = self.repository.permissions
        self.capabilities: Capability = config.capabilities

    @property
    def name(self) -> str:
        return self.config.name

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @asynccontextmanager
    async def _wrap(self, error_class: type[CrudError], operation: str) -> AsyncIterator[None]:
        try:
            yield
        except CrudError:
            raise
        except Exception as e:
            logger.error(f"{operation} {self.name} failed: {e}", exc_info=True)
            raise error_class(internal_error=e) from e

    # =========================================================================
    # Read
    # =========================================================================

    async def get_list(self, auth: AuthContext, request: ListRequest) -> tuple[list[dict[str, Any]], int]:
        await self.permissions.validate_read_permissions(auth)

        async with self._wrap(UnableToListError, "List"):
            items, count = await self.repository.get_list(auth, request)
            return [self.serializer.serialize(item, auth) for item in items], count

    async def get_item(self, auth: AuthContext, id: Any) -> dict[str, Any]:
        await self.permissions.validate_read_permissions(auth, id)

        async with self._wrap(UnableToGetError, "Get"):
            item = await self.repository.get_item(auth, id)
            return self.serializer.serialize(item, auth)

    # =========================================================================
    # Write
    # =========================================================================

    async def create_item(self, auth: AuthContext, input: dict[str, Any]) -> dict[str, Any]:
        database = self.repository.database
        async with database.session() as session:
            await self.permissions.validate_create_permissions(session, auth, input)

        async with self._wrap(UnableToCreateError, "Create"):
            async with database.session() as session:
                await self.validator.validate_relations(session, input)

            if self.config.validate_input is not None:
                await self.config.validate_input(input, auth, None, input)

            hooks = self.config.hooks
            if hooks.before_create is not None:
                input = await hooks.before_create(input, auth)

            attributes = await self._deserialize(input, auth)
            created = await self.repository.create_item(auth, attributes)

            if hooks.after_create is not None:
                created = await hooks.after_create(created, input, auth)

            return self.serializer.serialize(created, auth)

    async def update_item(
        self,
        auth: AuthContext,
        id: Any,
        input: dict[str, Any],
        is_partial: bool = False,
    ) -> dict[str, Any]:
        """
        Update an entity.

        Partial updates validate the existing item deep-merged with the
        input; full updates validate the input alone.
        """
        database = self.repository.database
        async with database.session() as session:
            await self.permissions.validate_update_permissions(session, auth, id)

        async with self._wrap(UnableToUpdateError, "Update"):
            item = await self.get_item(auth, id)

            self.validator.validate_immutable_fields(input, item)
            async with database.session() as session:
                await self.validator.validate_relations(session, input)

            primary_key = self.repository.entity.primary_key
            complete_input = deep_merge(item, input) if is_partial else {**input, primary_key: id}

            if self.config.validate_input is not None:
                await self.config.validate_input(complete_input, auth, item, input)

            hooks = self.config.hooks
            updated_input = input
            if hooks.before_update is not None:
                updated_input = await hooks.before_update(input, id, item, auth)

            attributes = await self._deserialize(updated_input, auth, item)
            updated = await self.repository.update_item(auth, id, attributes)

            if hooks.after_update is not None:
                updated = await hooks.after_update(updated, input, id, item, auth)

            return self.serializer.serialize(updated, auth)

    async def delete_item(self, auth: AuthContext, id: Any) -> dict[str, Any]:
        async with self.repository.database.session() as session:
            await self.permissions.validate_delete_permissions(session, auth, id)

        async with self._wrap(UnableToDeleteError, "Delete"):
            item = await self.repository.delete_item(auth, id)
            return self.serializer.serialize(item, auth)

    async def _deserialize(
        self,
        input: dict[str, Any],
        auth: AuthContext,
        existing: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        if self.config.deserialize is not None:
            return await self.config.deserialize(input, auth, existing)
        return await self.serializer.deserialize(input, auth, existing)
