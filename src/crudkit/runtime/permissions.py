"""
Permissions manager.

Scopes every operation of an entity to the values the caller holds in its
auth metadata. A permission definition names a metadata key; the key is
also the path (through the override map) of the column restricted by it:

    definitions = [PermissionDefinition(key="market_place")]
    auth = AuthContext({"market_place": [17, 20]})

    PermissionsManager(Product, definitions).generate_condition(auth)
    # WHERE market_place.id IN (17, 20)   joins: market_place

Reads are restricted by the generated condition. Creates check that the
referenced parent entity belongs to the caller, updates and deletes check
the stored entity itself.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.conditions import Condition
from ..core.errors import (
    InvalidPermissionDefinitionError,
    NoAccessError,
    NoPermissionsError,
)
from ..core.registry import EntityRegistry, registry as default_registry
from ..core.resolver import PathOverride, PathResolver, ResolvedPath
from .context import AuthContext

logger = logging.getLogger(__name__)


ReadPermissionGate = Callable[[AuthContext, Optional[Any]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class PermissionDefinition:
    """
    One permission restriction.

    key: auth metadata key, resolved as a path from the entity
    should_apply: predicate deciding whether the restriction applies to
        the current caller (always applies when omitted)
    """
    key: str
    should_apply: Optional[Callable[[AuthContext], bool]] = None

    def applies(self, auth: AuthContext) -> bool:
        if self.should_apply is None:
            return True
        return bool(self.should_apply(auth))


DEFAULT_PERMISSION_DEFINITIONS: tuple[PermissionDefinition, ...] = (
    PermissionDefinition(key="market_place"),
)


class PermissionsManager:
    """
    Builds read restrictions and runs write ownership checks for one model.

    Stateless: every call builds its own restriction list, so one instance
    can serve concurrent requests.
    """

    def __init__(
        self,
        model: type,
        definitions: Optional[Sequence[PermissionDefinition]] = None,
        path_map: Optional[Mapping[str, PathOverride]] = None,
        read_gate: Optional[ReadPermissionGate] = None,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.definitions = tuple(
            DEFAULT_PERMISSION_DEFINITIONS if definitions is None else definitions
        )
        self.path_map = dict(path_map or {})
        self.read_gate = read_gate
        self.registry = registry
        self.entity = registry.describe(model)
        self.resolver = PathResolver(
            model,
            self.path_map,
            error_class=InvalidPermissionDefinitionError,
            registry=registry,
        )

    def applicable_definitions(self, auth: AuthContext) -> list[PermissionDefinition]:
        return [definition for definition in self.definitions if definition.applies(auth)]

    def serialize_key(self, key: str) -> str:
        """
        Path restricted by a permission key.

        A key naming an association of the entity (e.g. "market_place")
        restricts that association's primary key ("market_place.id").
        """
        if key in self.path_map or self.entity.has_attribute(key):
            return key
        association = self.entity.get_association(key)
        if association is None:
            return key
        target = self.registry.describe(association.target)
        return f"{key}.{target.primary_key}"

    def resolve_definition(self, definition: PermissionDefinition) -> ResolvedPath:
        path = self.serialize_key(definition.key)
        try:
            return self.resolver.resolve(path)
        except InvalidPermissionDefinitionError:
            logger.error(
                f"Permission key '{definition.key}' does not resolve from "
                f"{self.entity.name} (path '{path}')"
            )
            raise

    # =========================================================================
    # Read
    # =========================================================================

    def generate_condition(self, auth: AuthContext) -> Condition:
        """Restriction of every applicable definition, ANDed."""
        condition = Condition()
        for definition in self.applicable_definitions(auth):
            resolved = self.resolve_definition(definition)
            column = self.resolver.column(resolved)
            condition.where.append(column.in_(auth.values(definition.key)))
            condition.joins.extend(resolved.joins)
        return Condition.merge(condition)

    async def validate_read_permissions(self, auth: AuthContext, id: Optional[Any] = None) -> None:
        """Explicit read gate. A no-op unless the entity configures one."""
        if self.read_gate is None:
            return
        result = self.read_gate(auth, id)
        if inspect.isawaitable(result):
            await result

    # =========================================================================
    # Write
    # =========================================================================

    async def validate_create_permissions(
        self,
        session: AsyncSession,
        auth: AuthContext,
        input: Mapping[str, Any],
    ) -> None:
        """
        Check that the parent entities referenced by the input belong to the caller.

        The first association of each definition's path must be present in
        the input with its primary key. When it is not, the definition is
        skipped with a warning.
        """
        for definition in self.applicable_definitions(auth):
            resolved = self.resolve_definition(definition)
            if not resolved.associations:
                logger.warning(
                    f"Permission '{definition.key}' of {self.entity.name} has no direct "
                    "association, create check skipped"
                )
                continue

            association = resolved.associations[0]
            target = self.registry.describe(association.target)
            nested = input.get(association.name)
            value = nested.get(target.primary_key) if isinstance(nested, Mapping) else None
            if value is None or value == "":
                logger.warning(
                    f"Input of {self.entity.name} has no '{association.name}.{target.primary_key}', "
                    f"create check for permission '{definition.key}' skipped"
                )
                continue

            remaining = resolved.associations[1:]
            allowed = auth.values(definition.key)

            stmt = select(getattr(target.model, target.primary_key)).select_from(target.model)
            path: tuple[str, ...] = ()
            for hop in remaining:
                path = path + (hop.name,)
                stmt = stmt.join(self.registry.relationship_attribute(target.model, path))

            if resolved.literal is not None:
                restricted = resolved.literal
            else:
                alias = self.registry.alias(target.model, path)
                restricted = getattr(alias, resolved.attribute.name)

            stmt = stmt.where(
                getattr(target.model, target.primary_key) == value,
                restricted.in_(allowed),
            ).limit(1)

            if await session.scalar(stmt) is None:
                raise NoAccessError(params={"key": definition.key, "value": value})

    async def validate_update_permissions(self, session: AsyncSession, auth: AuthContext, id: Any) -> None:
        await self._validate_stored_entity(session, auth, id)

    async def validate_delete_permissions(self, session: AsyncSession, auth: AuthContext, id: Any) -> None:
        await self._validate_stored_entity(session, auth, id)

    async def _validate_stored_entity(self, session: AsyncSession, auth: AuthContext, id: Any) -> None:
        primary_key = getattr(self.model, self.entity.primary_key)

        for definition in self.applicable_definitions(auth):
            resolved = self.resolve_definition(definition)
            stmt = select(primary_key).select_from(self.model)
            for join in Condition(joins=resolved.joins).expanded_joins():
                stmt = stmt.join(self.registry.relationship_attribute(self.model, join.path))
            stmt = stmt.where(
                primary_key == id,
                self.resolver.column(resolved).in_(auth.values(definition.key)),
            ).limit(1)

            if await session.scalar(stmt) is None:
                raise NoPermissionsError()
