"""Per-user sync configuration, including resolved field bindings.

One row per user. ``table_mappings`` is keyed by ``"<app_token>:<table_id>"``
and holds the binding document for that destination table.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin


class SyncConfig(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "sync_config"

    user_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    table_mappings: Mapped[dict[str, Any]] = mapped_column(default=dict)

    def __repr__(self) -> str:
        return f"<SyncConfig user={self.user_id} tables={len(self.table_mappings or {})}>"
