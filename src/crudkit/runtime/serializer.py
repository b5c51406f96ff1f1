"""
Serializer - entities to plain dicts and back.

Only what is already loaded is serialized; nothing here triggers a lazy
load (which would fail under AsyncSession anyway).
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.orm.base import NO_VALUE

from .context import AuthContext


def to_dict(instance: Any, _path: Optional[set[int]] = None) -> dict[str, Any]:
    """
    Loaded columns and relationships of an ORM instance, recursively.

    Non-mapped public attributes (the latest timestamp) are included too.
    Relationships leading back to an instance being serialized are skipped.
    """
    path = set(_path or ())
    path.add(id(instance))

    state = inspect(instance)
    mapper = state.mapper
    unloaded = state.unloaded
    data: dict[str, Any] = {}

    for prop in mapper.column_attrs:
        if prop.key not in unloaded:
            data[prop.key] = state.attrs[prop.key].loaded_value

    for rel in mapper.relationships:
        if rel.key in unloaded:
            continue
        value = state.attrs[rel.key].loaded_value
        if value is NO_VALUE:
            continue
        if value is None:
            data[rel.key] = None
        elif rel.uselist:
            data[rel.key] = [to_dict(item, path) for item in value if id(item) not in path]
        elif id(value) not in path:
            data[rel.key] = to_dict(value, path)

    for key, value in vars(instance).items():
        if not key.startswith("_") and key not in data and key not in mapper.attrs:
            data[key] = value

    return data


class Serializer:
    """
    Default serializer of an entity.

    Args:
        response_schema: Optional pydantic model the serialized dict is
            validated (and filtered) through.
    """

    def __init__(self, response_schema: Optional[type] = None):
        self.response_schema = response_schema

    def serialize(self, item: Any, auth: AuthContext) -> dict[str, Any]:
        data = to_dict(item)
        if self.response_schema is not None:
            return self.response_schema.model_validate(data).model_dump()
        return data

    async def deserialize(
        self,
        input: dict[str, Any],
        auth: AuthContext,
        existing: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Attributes handed to the repository. Identity by default."""
        return dict(input)
