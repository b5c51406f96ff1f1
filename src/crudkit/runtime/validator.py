"""
Input validator for writes.

- Immutable fields: dotted paths that cannot change once set
- Relations: referenced entities must exist

Usage:
    validator = Validator(Product, immutable_paths=["demand_source.id"])
    validator.validate_immutable_fields(input, existing_item)
    await validator.validate_relations(session, input)
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.defs import AssociationDef
from ..core.errors import ImmutableFieldError, InvalidRelationError
from ..core.registry import EntityRegistry, registry as default_registry
from ..models import EntityStatus

logger = logging.getLogger(__name__)


_MISSING = object()


def get_path(data: Any, path: str, default: Any = _MISSING) -> Any:
    """Value at a dotted path in nested dicts (or objects)."""
    current = data
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return default
            current = current[segment]
        elif current is not None and hasattr(current, segment):
            current = getattr(current, segment)
        else:
            return default
    return current


class Validator:
    """Write-time checks of one entity."""

    def __init__(
        self,
        model: type,
        immutable_paths: Sequence[str] = (),
        association_mapping: Optional[Mapping[str, str]] = None,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.immutable_paths = list(immutable_paths)
        self.association_mapping = dict(association_mapping or {})
        self.registry = registry
        self.entity = registry.describe(model)

    def validate_immutable_fields(self, input: Mapping[str, Any], record: Any) -> None:
        """
        Fail when an immutable path changes.

        Paths not yet set on the record (null) and paths absent from the
        input are not checked.
        """
        for path in self.immutable_paths:
            existing = get_path(record, path, None)
            if existing is None:
                continue
            value = get_path(input, path)
            if value is _MISSING:
                continue
            if value != existing:
                raise ImmutableFieldError(params={"field": path})

    async def validate_relations(self, session: AsyncSession, input: Mapping[str, Any]) -> None:
        """Fail when an association references an entity that does not exist."""
        for key, value in input.items():
            association = self._association(key)
            if association is None or not self.should_validate_association(association, value):
                continue

            target = self.registry.describe(association.target)
            primary_key = getattr(target.model, target.primary_key)

            if isinstance(value, (list, tuple)):
                ids = {entry[target.primary_key] for entry in value}
                if not ids:
                    continue
                stmt = select(func.count()).select_from(target.model).where(primary_key.in_(ids))
                expected = len(ids)
            else:
                stmt = select(func.count()).select_from(target.model).where(
                    primary_key == value[target.primary_key]
                )
                expected = 1

            if target.has_status:
                stmt = stmt.where(target.model.status_id == EntityStatus.REGULAR.value)

            found = await session.scalar(stmt) or 0
            if found != expected:
                logger.info(f"Invalid relation '{key}' for {self.entity.name}: {found}/{expected} found")
                raise InvalidRelationError(params={"field": key})

    def should_validate_association(self, association: AssociationDef, value: Any) -> bool:
        """Only references (entries carrying the target primary key) are checked."""
        primary_key = self.registry.describe(association.target).primary_key
        if isinstance(value, (list, tuple)):
            return all(isinstance(entry, Mapping) and primary_key in entry for entry in value)
        return isinstance(value, Mapping) and primary_key in value

    def _association(self, key: str) -> Optional[AssociationDef]:
        return self.entity.get_association(self.association_mapping.get(key, key))
