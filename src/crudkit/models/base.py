"""
Declarative base and built-in models.

Services declare their entities on the same Base so that relationships to
the built-in Info and Status tables resolve:

    class Product(Base, EntityModel):
        __tablename__ = "product"

        id: Mapped[int] = mapped_column(primary_key=True)
        info_id: Mapped[Optional[int]] = mapped_column(ForeignKey("info.id"))
        updated_at: Mapped[Optional[datetime]]
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class EntityStatus(IntEnum):
    """Lifecycle status of an entity row."""
    REGULAR = 1
    ARCHIVED = 2
    DELETED = 3


class Status(Base):
    """Lookup table for EntityStatus."""
    __tablename__ = "status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(32))

    @classmethod
    async def ensure_rows(cls, session: AsyncSession) -> None:
        """Insert missing EntityStatus rows."""
        existing = set(await session.scalars(select(cls.id)))
        for status in EntityStatus:
            if status.value not in existing:
                session.add(cls(id=status.value, name=status.name.lower()))
        await session.flush()


class EntityModel:
    """
    Mixin for entities with a lifecycle status.

    Rows are read only while REGULAR; deleting sets ARCHIVED (or DELETED,
    depending on the entity configuration).
    """

    @declared_attr
    def status_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            ForeignKey("status.id"),
            nullable=False,
            default=EntityStatus.REGULAR.value,
        )


class Info(Base):
    """Audit row: who created, modified and deleted an entity, and when."""
    __tablename__ = "info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by_id: Mapped[Optional[int]] = mapped_column(Integer)
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    modified_by_id: Mapped[Optional[int]] = mapped_column(Integer)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    deleted_by_id: Mapped[Optional[int]] = mapped_column(Integer)
