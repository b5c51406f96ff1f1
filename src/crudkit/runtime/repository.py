"""
Repository - reads and writes of one entity against the database.

Reads merge the base fetch condition with the permissions and filters
conditions. Lists run in two phases:

    1. SELECT product.id ... GROUP BY product.id ORDER BY ... LIMIT/OFFSET
       + SELECT count(DISTINCT product.id) ...
    2. SELECT product.* WHERE product.id IN (<phase 1 keys>) with eager loads

so joins fanning out rows never break pagination or the total count.

Writes run in one transaction. Nested input is upserted recursively:

    await repository.create_item(auth, {
        "name": "Bolt",
        "demand_source": {"id": 3},                     # belongs-to, saved first
        "metadata": {"data": "{}"},                     # has-one, saved after
        "orders": [{"quantity": 2}],                    # has-many, replaces the collection
        "contacts": [{"id": 7, "through": {"role": "owner"}}],   # many-to-many
    })
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import delete, distinct, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import with_loader_criteria
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql import Select

from ..core.conditions import Condition, OrderItem
from ..core.defs import AssociationDef
from ..core.errors import (
    EntityToUpdateNotFoundError,
    ItemNotFoundError,
    MaximumDepthExceededError,
)
from ..core.query_types import ListRequest
from ..core.registry import EntityRegistry, registry as default_registry
from ..models import EntityModel, EntityStatus, Info
from ..service.database import Database, get_database
from ..viewsets.base import EntityConfig
from .context import AuthContext
from .filters import FiltersGenerator
from .order import OrderGenerator
from .permissions import PermissionsManager
from .timestamps import LATEST_TIMESTAMP_ATTRIBUTE, TimestampsResolver

logger = logging.getLogger(__name__)


# Key of the join row attributes inside a many-to-many entry
THROUGH_KEY = "through"

INFO_ACTIONS = ("created", "modified", "deleted")


class Repository:
    """
    Query and persistence engine of one entity.

    Condition generators are stateless and built once per repository.
    """

    def __init__(
        self,
        config: EntityConfig,
        database: Optional[Database] = None,
        *,
        registry: EntityRegistry = default_registry,
    ):
        self.config = config
        self.model = config.model
        self.registry = registry
        self.entity = registry.describe(self.model)
        self._database = database

        self.timestamps = TimestampsResolver(self.model, config.timestamp_hierarchy, registry=registry)
        self.permissions = PermissionsManager(
            self.model,
            config.permission_definitions,
            config.permission_path_map,
            read_gate=config.read_permission_gate,
            registry=registry,
        )
        self.filters = FiltersGenerator(
            self.model,
            config.path_map,
            config.search_fields,
            timestamps=self.timestamps,
            registry=registry,
        )
        self.order = OrderGenerator(self.model, config.path_map, self.timestamps, registry=registry)

    @property
    def database(self) -> Database:
        return self._database if self._database is not None else get_database()

    @property
    def primary_key(self):
        return getattr(self.model, self.entity.primary_key)

    # =========================================================================
    # Conditions
    # =========================================================================

    def base_condition(self) -> Condition:
        """Static condition of every read (fetch options and default scope)."""
        where = list(self.config.fetch.where)
        if self.config.default_scope and self.entity.has_status:
            where.append(self.model.status_id == EntityStatus.REGULAR.value)
        return Condition(where=where, joins=self.config.fetch_joins())

    def generate_condition(self, auth: AuthContext, request: Optional[ListRequest] = None) -> Condition:
        return Condition.merge(
            self.base_condition(),
            self.permissions.generate_condition(auth),
            self.filters.generate_condition(auth, request),
        )

    def generate_order(self, request: Optional[ListRequest] = None) -> Condition:
        if self.config.order_strategy is None:
            return self.order.generate_condition(request)
        return self.order.append_tiebreaker(Condition.merge(self.config.order_strategy(request)))

    def select(self, columns: Sequence[Any], condition: Condition) -> Select:
        """SELECT columns FROM root with the condition's outer joins and predicate."""
        stmt = select(*columns).select_from(self.model)
        for join in condition.expanded_joins():
            stmt = stmt.outerjoin(self.join_target(join.path))
        predicate = condition.predicate
        if predicate is not None:
            stmt = stmt.where(predicate)
        return stmt

    def join_target(self, path: tuple[str, ...]) -> Any:
        """Relationship attribute joining path, restricted to REGULAR rows of entities with a status."""
        attribute = self.registry.relationship_attribute(self.model, path)
        if not self.config.default_scope:
            return attribute
        if not self.registry.describe(attribute.property.mapper.class_).has_status:
            return attribute
        alias = self.registry.alias(self.model, path)
        return attribute.and_(alias.status_id == EntityStatus.REGULAR.value)

    def fetch_options(self) -> list[Any]:
        """Loader options of the full fetch, eager loads included."""
        options = list(self.config.fetch.options)
        if self.config.default_scope:
            regular = EntityStatus.REGULAR.value
            options.append(with_loader_criteria(
                EntityModel,
                lambda cls: cls.status_id == regular,
                include_aliases=True,
            ))
        return options

    @staticmethod
    def order_clauses(order: Iterable[OrderItem], grouped: bool = False) -> list[Any]:
        clauses = []
        for item in order:
            expression = item.expression
            if grouped and item.aggregate:
                aggregate = item.aggregate_function or (func.min if item.direction == "ASC" else func.max)
                expression = aggregate(expression)
            clauses.append(expression.desc() if item.direction == "DESC" else expression.asc())
        return clauses

    # =========================================================================
    # Read
    # =========================================================================

    async def get_item(self, auth: AuthContext, id: Any, request: Optional[ListRequest] = None) -> Any:
        """Fetch one visible entity, ItemNotFoundError otherwise."""
        condition = Condition.merge(
            self.generate_condition(auth, request),
            Condition(where=[self.primary_key == id]),
        )
        stmt = self.select([self.primary_key], condition).limit(1)

        async with self.database.session() as session:
            key = await session.scalar(stmt)
            if key is None:
                raise ItemNotFoundError()
            items = await self.fetch_by_keys(session, [key])

        if not items:
            raise ItemNotFoundError()
        return items[0]

    async def get_list(self, auth: AuthContext, request: ListRequest) -> tuple[list[Any], int]:
        """One page of visible entities and the total count."""
        condition = self.generate_condition(auth, request)
        order = self.generate_order(request)
        primary_key = self.primary_key

        keys_stmt = (
            self.select([primary_key], Condition.merge(condition, Condition(joins=order.joins)))
            .group_by(primary_key)
            .order_by(*self.order_clauses(order.order, grouped=True))
            .limit(request.get_page_size())
            .offset(request.offset)
        )
        count_stmt = self.select([func.count(distinct(primary_key))], condition)

        async with self.database.session() as session:
            keys = list(await session.scalars(keys_stmt))
            total = await session.scalar(count_stmt) or 0
            items = await self.fetch_by_keys(session, keys)

        logger.debug(f"Listed {len(items)}/{total} {self.entity.name} (page {request.page})")
        return items, total

    async def fetch_by_keys(self, session: AsyncSession, keys: Sequence[Any]) -> list[Any]:
        """Full entities for keys, in the order of keys."""
        if not keys:
            return []

        condition = Condition.merge(
            self.base_condition(),
            Condition(where=[self.primary_key.in_(keys)]),
        )
        stmt = self.select([self.model], condition).options(*self.fetch_options())
        result = await session.scalars(stmt)

        by_key = {getattr(item, self.entity.primary_key): item for item in result.unique()}
        items = [by_key[key] for key in keys if key in by_key]
        await self.load_latest_timestamps(session, items)
        return items

    async def load_latest_timestamps(self, session: AsyncSession, items: Sequence[Any]) -> None:
        """Set the latest timestamp of the hierarchy on each entity."""
        if not items or self.config.timestamp_hierarchy is None:
            return
        expression = self.timestamps.build_latest_timestamp_expression()
        if expression is None:
            return

        keys = [getattr(item, self.entity.primary_key) for item in items]
        stmt = self.select(
            [self.primary_key, expression.label(LATEST_TIMESTAMP_ATTRIBUTE)],
            Condition(where=[self.primary_key.in_(keys)], joins=self.timestamps.joins()),
        ).distinct()

        latest: dict[Any, Any] = {}
        for key, value in (await session.execute(stmt)).all():
            if key not in latest or (value is not None and value > latest[key]):
                latest[key] = value

        mapped = LATEST_TIMESTAMP_ATTRIBUTE in self.entity.attributes
        for item in items:
            value = latest.get(getattr(item, self.entity.primary_key))
            if mapped:
                set_committed_value(item, LATEST_TIMESTAMP_ATTRIBUTE, value)
            else:
                setattr(item, LATEST_TIMESTAMP_ATTRIBUTE, value)

    # =========================================================================
    # Write
    # =========================================================================

    async def create_item(self, auth: AuthContext, attributes: Mapping[str, Any]) -> Any:
        async with self.database.transaction() as session:
            instance = await self.upsert_entity(session, auth, self.model, attributes)
            key = getattr(instance, self.entity.primary_key)
        logger.debug(f"Created {self.entity.name} {key}")
        return await self.get_item(auth, key)

    async def update_item(self, auth: AuthContext, id: Any, attributes: Mapping[str, Any]) -> Any:
        async with self.database.transaction() as session:
            await self.upsert_entity(
                session, auth, self.model, {**attributes, self.entity.primary_key: id}
            )
        logger.debug(f"Updated {self.entity.name} {id}")
        return await self.get_item(auth, id)

    async def delete_item(self, auth: AuthContext, id: Any) -> Any:
        """
        Delete a visible entity and return it as it was before.

        Entities with a status are soft deleted with the configured status.
        The audit row is only stamped for the DELETED tier.
        """
        item = await self.get_item(auth, id)
        soft_delete_status = self.config.soft_delete_status

        async with self.database.transaction() as session:
            if not self.entity.has_status:
                await session.execute(delete(self.model).where(self.primary_key == id))
            else:
                values = {"status_id": soft_delete_status.value}
                if self.entity.has_info and soft_delete_status is EntityStatus.DELETED:
                    info = await self.upsert_info(session, auth, "deleted", item.info_id)
                    values["info_id"] = info.id
                await session.execute(update(self.model).where(self.primary_key == id).values(**values))

        logger.debug(f"Deleted {self.entity.name} {id} ({soft_delete_status.name})")
        return item

    async def upsert_entity(
        self,
        session: AsyncSession,
        auth: AuthContext,
        model: type,
        attributes: Mapping[str, Any],
        depth: int = 0,
    ) -> Any:
        """
        Create or update one entity and its nested associations.

        Returns the bare entity (associations not loaded).
        """
        if depth > self.config.max_depth:
            logger.error(f"Nested input of {self.entity.name} deeper than {self.config.max_depth}")
            raise MaximumDepthExceededError(params={
                "entity": model.__name__,
                "max_depth": self.config.max_depth,
            })

        entity = self.registry.describe(model)

        values = {key: value for key, value in attributes.items() if key in entity.attributes}
        nested = {
            key: value
            for key, value in attributes.items()
            if key in entity.associations and value is not None
        }
        on_source = {key: value for key, value in nested.items() if entity.associations[key].foreign_key_on_source}
        on_target = {key: value for key, value in nested.items() if key not in on_source}

        # Belongs-to: the parent needs the child's key before being saved
        for name, value in on_source.items():
            association = entity.associations[name]
            related = await self.upsert_entity(session, auth, association.target, value, depth + 1)
            target = self.registry.describe(association.target)
            values[association.foreign_key] = getattr(related, target.primary_key)

        key = values.get(entity.primary_key)
        if key is None:
            values.pop(entity.primary_key, None)
            if entity.has_info:
                info = await self.upsert_info(session, auth, "created")
                values["info_id"] = info.id
            instance = model(**values)
            session.add(instance)
        else:
            instance = await session.get(model, key)
            if instance is None:
                logger.error(f"{entity.name} {key} vanished during update")
                raise EntityToUpdateNotFoundError(params={"id": key})
            for name, value in values.items():
                setattr(instance, name, value)
            if entity.has_info:
                info = await self.upsert_info(session, auth, "modified", instance.info_id)
                instance.info_id = info.id

        await session.flush()
        source_key = getattr(instance, entity.primary_key)

        # Has-one, has-many, many-to-many: the child needs the parent's key
        for name, value in on_target.items():
            association = entity.associations[name]
            if isinstance(value, (list, tuple)):
                await self._replace_collection(session, auth, association, source_key, value, depth)
            else:
                await self.upsert_entity(
                    session,
                    auth,
                    association.target,
                    {**value, association.foreign_key: source_key},
                    depth + 1,
                )

        return instance

    async def _replace_collection(
        self,
        session: AsyncSession,
        auth: AuthContext,
        association: AssociationDef,
        source_key: Any,
        entries: Sequence[Mapping[str, Any]],
        depth: int,
    ) -> None:
        target = self.registry.describe(association.target)

        if association.is_many_to_many:
            await self.remove_relations(session, association, source_key)
            for entry in entries:
                target_key = entry.get(target.primary_key)
                if target_key is None:
                    related = await self.upsert_entity(session, auth, association.target, entry, depth + 1)
                    target_key = getattr(related, target.primary_key)
                link = dict(entry.get(THROUGH_KEY) or {})
                link[association.foreign_key] = source_key
                link[association.other_key] = target_key
                await self._link(session, association, link)
            return

        # Entries sent again stay linked, everything else is removed
        kept = [entry[target.primary_key] for entry in entries if entry.get(target.primary_key) is not None]
        await self.remove_relations(session, association, source_key, keep=kept)
        for entry in entries:
            await self.upsert_entity(
                session,
                auth,
                association.target,
                {**entry, association.foreign_key: source_key},
                depth + 1,
            )

    async def remove_relations(
        self,
        session: AsyncSession,
        association: AssociationDef,
        source_key: Any,
        keep: Sequence[Any] = (),
    ) -> None:
        """
        Unlink the rows currently linked to source_key through association.

        Nullable foreign key -> set to NULL, target with a status -> DELETED,
        otherwise the rows are deleted.
        """
        nullable = association.foreign_key_column.nullable

        if association.is_many_to_many and association.through_model is None:
            table = association.through_table
            foreign_key = table.c[association.foreign_key_column.name]
            if nullable:
                stmt = update(table).where(foreign_key == source_key).values({foreign_key.name: None})
            elif "status_id" in table.c:
                stmt = update(table).where(foreign_key == source_key).values(status_id=EntityStatus.DELETED.value)
            else:
                stmt = delete(table).where(foreign_key == source_key)
            await session.execute(stmt)
            return

        model = association.through_model if association.is_many_to_many else association.target
        owner = self.registry.describe(model)
        criteria = [getattr(model, association.foreign_key) == source_key]
        if keep:
            criteria.append(getattr(model, owner.primary_key).not_in(keep))

        if nullable:
            stmt = update(model).where(*criteria).values({association.foreign_key: None})
            policy = "nullified"
        elif owner.has_status:
            stmt = update(model).where(*criteria).values(status_id=EntityStatus.DELETED.value)
            policy = "soft deleted"
        else:
            stmt = delete(model).where(*criteria)
            policy = "deleted"

        await session.execute(stmt.execution_options(synchronize_session="fetch"))
        logger.debug(f"{association.name} of {association.source.__name__} {source_key}: previous rows {policy}")

    async def _link(self, session: AsyncSession, association: AssociationDef, values: dict[str, Any]) -> None:
        if association.through_model is not None:
            through = self.registry.describe(association.through_model)
            session.add(association.through_model(**{
                key: value for key, value in values.items() if key in through.attributes
            }))
            await session.flush()
        else:
            columns = association.through_table.c
            await session.execute(
                insert(association.through_table).values({
                    key: value for key, value in values.items() if key in columns
                })
            )

    async def upsert_info(
        self,
        session: AsyncSession,
        auth: AuthContext,
        action: str,
        id: Optional[Any] = None,
    ) -> Info:
        """Stamp `<action>_at` / `<action>_by_id` of an audit row, creating it if needed."""
        if action not in INFO_ACTIONS:
            raise ValueError(f"Unknown info action: {action}")

        info = await session.get(Info, id) if id is not None else None
        if info is None:
            info = Info(id=id) if id is not None else Info()
            session.add(info)

        setattr(info, f"{action}_at", datetime.now(timezone.utc))
        if auth.actor_id is not None:
            setattr(info, f"{action}_by_id", auth.actor_id)

        await session.flush()
        return info
