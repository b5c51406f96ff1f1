"""
Core dataclass definitions for the crudkit entity graph.

These describe entities, attributes and associations as read from the
SQLAlchemy mappers. They are built once by the EntityRegistry at startup
and never mutated afterwards.
"""

from __future__ import annotations


from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, Table


class AssociationKind(str, Enum):
    """Kind of a declared association, seen from its source entity."""
    BELONGS_TO = "BelongsTo"
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"
    BELONGS_TO_MANY = "BelongsToMany"


@dataclass(frozen=True)
class AttributeDef:
    """Definition of an entity attribute."""
    name: str  # mapped attribute name
    column: str  # physical column name (differs from name when aliased)
    type: str  # int, string, bool, float, datetime, date, json, enum
    nullable: bool = True
    primary_key: bool = False


@dataclass(frozen=True, eq=False)
class AssociationDef:
    """
    Definition of an association between two entities.

    foreign_key semantics depend on the kind:
    - BelongsTo: attribute on the source entity (e.g. Product.demand_source_id)
    - HasOne / HasMany: attribute on the target entity (e.g. Order.product_id)
    - BelongsToMany: column of the through table pointing to the source,
      other_key being the through table column pointing to the target.
    """
    name: str  # alias under which the source refers to the target
    kind: AssociationKind
    source: type
    target: type
    foreign_key: str
    foreign_key_column: Column[Any]
    other_key: Optional[str] = None
    through_table: Optional[Table] = None
    through_model: Optional[type] = None  # mapped class of through_table, if any

    @property
    def is_many_to_many(self) -> bool:
        return self.kind is AssociationKind.BELONGS_TO_MANY

    @property
    def is_to_many(self) -> bool:
        return self.kind in (AssociationKind.HAS_MANY, AssociationKind.BELONGS_TO_MANY)

    @property
    def foreign_key_on_source(self) -> bool:
        return self.kind is AssociationKind.BELONGS_TO


@dataclass(frozen=True, eq=False)
class EntityDef:
    """Definition of an entity (one mapped model)."""
    name: str
    model: type
    table_name: str
    primary_key: str  # attribute name
    primary_key_column: str  # physical column name
    attributes: dict[str, AttributeDef] = field(default_factory=dict)
    associations: dict[str, AssociationDef] = field(default_factory=dict)
    updated_at: Optional[str] = None  # attribute holding the last modification time

    @property
    def has_timestamps(self) -> bool:
        return self.updated_at is not None

    @property
    def has_status(self) -> bool:
        return "status_id" in self.attributes

    @property
    def has_info(self) -> bool:
        return "info_id" in self.attributes

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def get_association(self, name: str) -> Optional[AssociationDef]:
        return self.associations.get(name)

    def association_to(self, target: type) -> Optional[AssociationDef]:
        """Return the first association pointing directly to the target model."""
        return next(
            (assoc for assoc in self.associations.values() if assoc.target is target),
            None,
        )
