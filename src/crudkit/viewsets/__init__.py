"""
Per-entity configuration of the CRUD engine.

Models stay pure ORM. All entity customization lives in an EntityConfig.
"""

from __future__ import annotations

from .base import Capability, EntityConfig, FetchOptions, ProviderHooks

__all__ = [
    "Capability",
    "EntityConfig",
    "FetchOptions",
    "ProviderHooks",
]
