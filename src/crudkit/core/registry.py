"""
Entity registry - collects entity definitions from SQLAlchemy mappers.

Models stay pure ORM. The registry reads their mappers once and exposes
immutable EntityDef descriptors, keyed by model class.

Usage:
    from crudkit.core.registry import registry

    product = registry.describe(Product)
    product.associations["contacts"].kind   # AssociationKind.BELONGS_TO_MANY

    # Shared alias for a joined association path from a root entity
    address = registry.alias(Product, ("contacts", "address"))
"""

from __future__ import annotations


from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Mapper, RelationshipProperty, aliased, configure_mappers
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE, ONETOMANY
from sqlalchemy.orm.util import AliasedClass

from .defs import AssociationDef, AssociationKind, AttributeDef, EntityDef


DEFAULT_UPDATED_AT = "updated_at"


def get_column_type(column) -> str:
    """Map SQLAlchemy column type to simple type string."""
    type_name = column.type.__class__.__name__.lower()

    if type_name in ("integer", "biginteger", "smallinteger"):
        return "int"
    elif type_name in ("boolean",):
        return "bool"
    elif type_name in ("float", "numeric", "decimal"):
        return "float"
    elif type_name in ("datetime", "timestamp"):
        return "datetime"
    elif type_name in ("date",):
        return "date"
    elif type_name in ("json", "jsonb"):
        return "json"
    elif type_name == "enum":
        return "enum"
    else:
        return "string"


class EntityRegistry:
    """
    Arena of entity descriptors keyed by model class.

    Descriptors are built lazily on first access and cached forever;
    the entity graph is static configuration.
    """

    def __init__(self):
        self._entities: dict[type, EntityDef] = {}
        self._aliases: dict[tuple[type, tuple[str, ...]], AliasedClass[Any]] = {}

    def describe(self, model: type) -> EntityDef:
        """Get (or build) the descriptor of a model."""
        entity = self._entities.get(model)
        if entity is None:
            entity = self._build_entity(model)
            self._entities[model] = entity
        return entity

    def alias(self, root: type, path: tuple[str, ...]) -> Any:
        """
        Get the shared alias of the entity reached from root through path.

        The root itself is returned for an empty path. Aliases are named by
        the dot-joined association path (e.g. "contacts.address"), so every
        generator referencing the same path references the same FROM element.
        """
        if not path:
            return root

        key = (root, tuple(path))
        alias = self._aliases.get(key)
        if alias is None:
            target = root
            for name in path:
                target = self.describe(target).associations[name].target
            alias = aliased(target, name=".".join(path))
            self._aliases[key] = alias
        return alias

    def relationship_attribute(self, root: type, path: tuple[str, ...]) -> Any:
        """
        Get the relationship attribute used to join the last hop of a path,
        bound to the alias of its parent and targeting the alias of the path.
        """
        parent = self.alias(root, path[:-1])
        return getattr(parent, path[-1]).of_type(self.alias(root, path))

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def _build_entity(self, model: type) -> EntityDef:
        configure_mappers()
        mapper: Mapper[Any] = inspect(model)

        attributes: dict[str, AttributeDef] = {}
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            attributes[prop.key] = AttributeDef(
                name=prop.key,
                column=getattr(column, "name", prop.key),
                type=get_column_type(column),
                nullable=bool(getattr(column, "nullable", True)),
                primary_key=bool(getattr(column, "primary_key", False)),
            )

        primary_key_column = mapper.primary_key[0]
        primary_key = mapper.get_property_by_column(primary_key_column).key

        associations = {
            rel.key: self._build_association(model, rel)
            for rel in mapper.relationships
        }

        updated_at = getattr(model, "__updated_at__", DEFAULT_UPDATED_AT)

        return EntityDef(
            name=model.__name__,
            model=model,
            table_name=mapper.local_table.name,
            primary_key=primary_key,
            primary_key_column=primary_key_column.name,
            attributes=attributes,
            associations=associations,
            updated_at=updated_at if updated_at in attributes else None,
        )

    def _build_association(self, model: type, rel: RelationshipProperty[Any]) -> AssociationDef:
        target = rel.mapper.class_

        if rel.direction is MANYTOMANY:
            through_table = rel.secondary
            foreign_key_column = rel.synchronize_pairs[0][1]
            other_key_column = rel.secondary_synchronize_pairs[0][1]
            through_model = self._find_mapped_class(rel.mapper, through_table)

            return AssociationDef(
                name=rel.key,
                kind=AssociationKind.BELONGS_TO_MANY,
                source=model,
                target=target,
                foreign_key=self._column_key(through_model, foreign_key_column),
                foreign_key_column=foreign_key_column,
                other_key=self._column_key(through_model, other_key_column),
                through_table=through_table,
                through_model=through_model,
            )

        # synchronize_pairs are (source, destination); the destination is the FK
        foreign_key_column = rel.synchronize_pairs[0][1]

        if rel.direction is MANYTOONE:
            kind = AssociationKind.BELONGS_TO
            owner = model
        elif rel.direction is ONETOMANY and not rel.uselist:
            kind = AssociationKind.HAS_ONE
            owner = target
        else:
            kind = AssociationKind.HAS_MANY
            owner = target

        return AssociationDef(
            name=rel.key,
            kind=kind,
            source=model,
            target=target,
            foreign_key=self._column_key(owner, foreign_key_column),
            foreign_key_column=foreign_key_column,
        )

    @staticmethod
    def _column_key(model: Optional[type], column) -> str:
        """Attribute name mapped to a column, or the column name when unmapped."""
        if model is None:
            return column.key
        return inspect(model).get_property_by_column(column).key

    @staticmethod
    def _find_mapped_class(mapper: Mapper[Any], table) -> Optional[type]:
        for candidate in mapper.registry.mappers:
            if candidate.local_table is table:
                return candidate.class_
        return None


# Process-wide registry. The entity graph is static, so a shared arena is safe.
registry = EntityRegistry()
