"""
Association path resolver.

Turns a dotted path typed by a user (filter, sort_by, permission key) into a
chain of associations and a terminal attribute of the reached entity:

    resolver = PathResolver(Product)
    resolved = resolver.resolve("contacts.address.email")
    [a.name for a in resolved.associations]   # ['contacts', 'address']
    resolved.attribute.name                   # 'email'
    resolver.column(resolved)                 # "contacts.address".email

A per-entity override map is consulted first. A mapped string is resolved
in place of the input path; any other mapped value is taken as a literal SQL
expression with no association:

    PathResolver(Product, path_map={
        "market_place": "supply_network.market_place_id",
        "is_active": literal_column("status_id = 1"),
    })
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from sqlalchemy.sql.elements import ColumnElement

from .conditions import Join
from .defs import AssociationDef, AttributeDef
from .errors import InvalidPathError
from .registry import EntityRegistry, registry as default_registry

logger = logging.getLogger(__name__)


PathOverride = Union[str, ColumnElement[Any]]


@dataclass(frozen=True)
class ResolvedPath:
    """Result of resolving one path."""
    associations: tuple[AssociationDef, ...] = ()
    attribute: Optional[AttributeDef] = None
    literal: Optional[ColumnElement[Any]] = None

    @property
    def is_literal(self) -> bool:
        return self.literal is not None

    @property
    def association_path(self) -> tuple[str, ...]:
        return tuple(association.name for association in self.associations)

    @property
    def joins(self) -> list[Join]:
        return [Join(self.association_path)] if self.associations else []

    @property
    def field_type(self) -> str:
        # literal expressions are compared as booleans
        return self.attribute.type if self.attribute is not None else "bool"

    @property
    def reference(self) -> str:
        """Qualified physical reference, e.g. "contacts.address.email"."""
        if self.attribute is None:
            return str(self.literal)
        return ".".join(self.association_path + (self.attribute.column,))


class PathResolver:
    """
    Resolve dotted paths against one root model.

    Args:
        model: Root model class
        path_map: Overrides keyed by exact input path
        error_class: Raised for unresolvable paths. Consumers pick the error
            their callers should see (filter, sort, permission definition).
    """

    def __init__(
        self,
        model: type,
        path_map: Optional[Mapping[str, PathOverride]] = None,
        error_class: type[Exception] = InvalidPathError,
        registry: EntityRegistry = default_registry,
    ):
        self.model = model
        self.path_map = dict(path_map or {})
        self.error_class = error_class
        self.registry = registry

    def resolve(self, path: str) -> ResolvedPath:
        override = self.path_map.get(path)
        if override is not None:
            if isinstance(override, str):
                return self._resolve_mechanically(override)
            return ResolvedPath(literal=override)
        return self._resolve_mechanically(path)

    def column(self, resolved: ResolvedPath) -> ColumnElement[Any]:
        """Column expression of a resolved path, bound to the shared join alias."""
        if resolved.literal is not None:
            return resolved.literal
        alias = self.registry.alias(self.model, resolved.association_path)
        return getattr(alias, resolved.attribute.name)

    def _resolve_mechanically(self, path: str) -> ResolvedPath:
        segments = path.split(".") if path else []
        if not segments or not all(segments):
            raise self._invalid(path)

        entity = self.registry.describe(self.model)
        associations: list[AssociationDef] = []
        for name in segments[:-1]:
            association = entity.get_association(name)
            if association is None:
                raise self._invalid(path)
            associations.append(association)
            entity = self.registry.describe(association.target)

        attribute = entity.attributes.get(segments[-1])
        if attribute is None:
            raise self._invalid(path)

        return ResolvedPath(associations=tuple(associations), attribute=attribute)

    def _invalid(self, path: str) -> Exception:
        logger.debug(f"Unable to resolve path '{path}' from {self.model.__name__}")
        return self.error_class(params={"path": path})
