"""Field binding store: per (user, destination table) key -> column id maps.

Durable copy lives in ``SyncConfig.table_mappings``; a TTL cache sits in
front of it. Writes go to storage first, then the cache.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..cache import TTLCache
from ..config import settings
from ..errors import InvalidBindingError
from ..models.sync_config import SyncConfig
from ..schemas.binding import FieldBinding
from ..schemas.destination import DestinationTable
from . import registry

log = logging.getLogger(__name__)

COLUMN_ID_PATTERN = re.compile(r"^fld[a-zA-Z0-9]{14,}$")


def validate_binding(binding: FieldBinding) -> list[str]:
    """Return a list of problems; empty means the binding may be persisted."""
    problems: list[str] = []
    category = binding.category
    if category not in registry.supported_categories():
        return [f"unsupported category: {category}"]

    for key in registry.required_field_keys(category):
        if not binding.fields.get(key):
            problems.append(f"missing required field: {key}")

    for key, column_id in binding.fields.items():
        if key.startswith("_"):
            continue
        if not registry.is_supported(key, category):
            problems.append(f"unknown field for {category}: {key}")
        if not isinstance(column_id, str) or not COLUMN_ID_PATTERN.match(column_id):
            problems.append(f"invalid column id for {key}: {column_id!r}")
    return problems


class FieldBindingStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: TTLCache | None = None,
    ):
        self._session_factory = session_factory
        self._cache = cache if cache is not None else TTLCache(settings.binding_cache_ttl_seconds)

    @staticmethod
    def _cache_key(user_id: str, table: DestinationTable) -> tuple[str, str]:
        return (user_id, table.key)

    @staticmethod
    async def _load_config(db: AsyncSession, user_id: str) -> SyncConfig | None:
        stmt = select(SyncConfig).where(SyncConfig.user_id == user_id)
        return (await db.execute(stmt)).scalar_one_or_none()

    async def get(self, user_id: str, table: DestinationTable) -> FieldBinding | None:
        cache_key = self._cache_key(user_id, table)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        async with self._session_factory() as db:
            config = await self._load_config(db, user_id)
            stored = (config.table_mappings or {}).get(table.key) if config else None

        if not stored:
            return None
        try:
            binding = FieldBinding.from_storage(stored)
        except ValidationError as e:
            log.warning("Ignoring malformed binding for %s on %s: %s", user_id, table.key, e)
            return None

        self._cache.set(cache_key, binding)
        return binding

    async def set(self, user_id: str, table: DestinationTable, binding: FieldBinding) -> FieldBinding:
        """Validate, persist, then cache. The original ``created_at`` survives overwrites."""
        problems = validate_binding(binding)
        if problems:
            raise InvalidBindingError(
                f"Invalid field binding for {table.key}: " + "; ".join(problems)
            )

        now = datetime.now(timezone.utc)
        async with self._session_factory() as db:
            config = await self._load_config(db, user_id)
            if config is None:
                config = SyncConfig(user_id=user_id, table_mappings={})
                db.add(config)

            mappings = dict(config.table_mappings or {})
            previous = mappings.get(table.key)
            created_at = binding.created_at
            if isinstance(previous, dict) and previous.get("created_at"):
                try:
                    created_at = FieldBinding.from_storage(previous).created_at
                except ValidationError:
                    pass

            binding = binding.model_copy(update={"created_at": created_at, "updated_at": now})
            mappings[table.key] = binding.to_storage()
            # Reassign so the JSON column is flagged dirty.
            config.table_mappings = mappings
            await db.commit()

        self._cache.set(self._cache_key(user_id, table), binding)
        log.info(
            "Saved binding for %s on %s (%d fields)", user_id, table.key, len(binding.bound_keys())
        )
        return binding

    async def clear(self, user_id: str, table: DestinationTable) -> bool:
        """Remove the durable entry and the cached one. Returns True if storage had it."""
        removed = False
        async with self._session_factory() as db:
            config = await self._load_config(db, user_id)
            if config is not None and table.key in (config.table_mappings or {}):
                mappings = dict(config.table_mappings)
                del mappings[table.key]
                config.table_mappings = mappings
                await db.commit()
                removed = True

        self.invalidate(user_id, table)
        if removed:
            log.info("Cleared binding for %s on %s", user_id, table.key)
        return removed

    def invalidate(self, user_id: str, table: DestinationTable) -> None:
        self._cache.delete(self._cache_key(user_id, table))

    async def list_tables(self, user_id: str) -> dict[str, FieldBinding]:
        async with self._session_factory() as db:
            config = await self._load_config(db, user_id)
            mappings = dict(config.table_mappings or {}) if config else {}

        bindings: dict[str, FieldBinding] = {}
        for table_key, stored in mappings.items():
            try:
                bindings[table_key] = FieldBinding.from_storage(stored)
            except ValidationError as e:
                log.warning("Skipping malformed binding %s for %s: %s", table_key, user_id, e)
        return bindings
