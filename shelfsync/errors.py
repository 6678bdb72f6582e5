"""Exception hierarchy for shelfsync."""

from __future__ import annotations


class ShelfSyncError(Exception):
    """Base class for all shelfsync errors."""


class ConfigurationError(ShelfSyncError):
    """Fatal setup problem; aborts a run before any destination mutation."""


class UnsupportedCategoryError(ConfigurationError):
    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unsupported content category: {category}")


class UnsupportedFieldError(ConfigurationError):
    def __init__(self, field_key: str, category: str):
        self.field_key = field_key
        self.category = category
        super().__init__(f"Unsupported field: {field_key} (category: {category})")


class InvalidBindingError(ConfigurationError):
    """Raised when a field binding fails validation before persistence."""


class MissingSubjectIdBindingError(ConfigurationError):
    def __init__(self, detail: str = ""):
        message = "Subject ID field binding is required for incremental sync"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class BatchLimitExceededError(ConfigurationError):
    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Requested {requested} field operations, which exceeds the batch limit of {limit}"
        )


class DestinationError(ShelfSyncError):
    """A destination call failed."""


class DestinationIndexError(DestinationError):
    """Fetching existing destination records failed."""


class BitableAPIError(DestinationError):
    """Bitable responded with a non-zero ``code``."""

    RATE_LIMIT_CODES = frozenset({1254, 1254290, 99991400})

    def __init__(self, code: int, msg: str, status_code: int | None = None):
        self.code = code
        self.msg = msg
        self.status_code = status_code
        super().__init__(f"Bitable API error {code}: {msg}")

    @property
    def retryable(self) -> bool:
        if self.code in self.RATE_LIMIT_CODES:
            return True
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)


class ContentSourceError(ShelfSyncError):
    """The content source could not deliver records for a category."""
