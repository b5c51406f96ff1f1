"""
Request scoped auth context.

Carries the metadata of the authenticated caller (tenant scoping ids, actor
id, flags). The auth layer in front of the service builds it; the core only
reads it.

Usage:
    auth = AuthContext({"market_place": [17, 20], "internal": {"id": 4}})
    auth.values("market_place")     # [17, 20]
    auth.has_value("market_place")  # True
"""

from __future__ import annotations


from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class AuthContext:
    """Opaque bag of metadata key -> scalar or array values."""
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_metadata(self) -> dict[str, Any]:
        return self.metadata

    def get(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def values(self, key: str) -> list[Any]:
        """Metadata value(s) for key, always as a list."""
        value = self.metadata.get(key)
        if value is None:
            return []
        if isinstance(value, (list, tuple, set)):
            return list(value)
        return [value]

    def has_value(self, key: str) -> bool:
        value = self.metadata.get(key)
        if isinstance(value, (list, tuple)):
            return len(value) > 0 and value[0] is not None
        return value is not None

    @property
    def actor_id(self) -> Optional[Any]:
        """Id of the acting user, taken from `internal.id`."""
        internal = self.metadata.get("internal")
        if isinstance(internal, dict):
            return internal.get("id")
        return None
