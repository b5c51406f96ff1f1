"""
Built-in models shared by every crudkit service.
"""

from __future__ import annotations

from .base import Base, EntityModel, EntityStatus, Info, Status

__all__ = [
    "Base",
    "EntityModel",
    "EntityStatus",
    "Info",
    "Status",
]
