"""shelfsync models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin
from .sync_config import SyncConfig

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "SyncConfig",
]
