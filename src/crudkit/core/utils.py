"""
Utility functions for crudkit.

Includes:
- Deep merge of nested payloads (PATCH semantics)
"""

from __future__ import annotations

from typing import Any, Mapping


# =============================================================================
# Merge utilities
# =============================================================================


def deep_merge(original: Mapping[str, Any], partial: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge partial into original, recursively for nested dicts.

    Lists are not merged: a list in partial replaces the original one, the
    same way collections are replaced on write.

    Example:
        deep_merge(
            {"name": "Bolt", "metadata": {"data": "a", "pk": 1}, "orders": [{"id": 1}]},
            {"metadata": {"data": "b"}, "orders": [{"id": 2}]},
        )
        -> {"name": "Bolt", "metadata": {"data": "b", "pk": 1}, "orders": [{"id": 2}]}
    """
    merged = dict(original)
    for key, value in partial.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged
