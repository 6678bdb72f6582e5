"""shelfsync configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class ShelfSyncSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///shelfsync.db"
    echo_sql: bool = False

    # Destination (Feishu / Lark Bitable open API)
    bitable_base_url: str = "https://open.feishu.cn"
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    # Field reconciliation
    # "exact" is canonical; "scored" enables the legacy fuzzy matcher.
    field_matcher: str = "exact"
    field_operation_delay_seconds: float = 1.0
    field_batch_limit: int = 20
    binding_cache_ttl_seconds: int = 1800

    # Record sync
    record_page_size: int = 500
    record_batch_size: int = 500
    page_delay_seconds: float = 1.0
    batch_delay_seconds: float = 1.0
    batch_delay_jitter_seconds: float = 1.0
    delete_delay_seconds: float = 0.5
    sync_state_ttl_seconds: int = 3600

    model_config = {"env_prefix": "SHELFSYNC_", "env_file": ".env", "extra": "ignore"}


settings = ShelfSyncSettings()
