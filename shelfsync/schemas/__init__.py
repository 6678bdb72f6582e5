"""Pydantic schemas shared across shelfsync."""

from .binding import FieldBinding
from .destination import Column, Credentials, DestinationRecord, DestinationTable, RecordPage
from .fields import (
    BatchFieldOperationResult,
    BatchOperationSummary,
    ConfigurationChange,
    FieldFailure,
    FieldMatchAnalysis,
    FieldOperationOptions,
    FieldOperationResult,
    FieldTemplate,
    FieldType,
    SelectOption,
)
from .sync import (
    CompletionEvent,
    MultiSyncResult,
    ProgressEvent,
    RecordOutcome,
    SyncDetails,
    SyncOptions,
    SyncPhase,
    SyncResult,
    SyncRun,
    SyncSummary,
    SyncTarget,
)

__all__ = [
    "FieldBinding",
    "Column",
    "Credentials",
    "DestinationRecord",
    "DestinationTable",
    "RecordPage",
    "BatchFieldOperationResult",
    "BatchOperationSummary",
    "ConfigurationChange",
    "FieldFailure",
    "FieldMatchAnalysis",
    "FieldOperationOptions",
    "FieldOperationResult",
    "FieldTemplate",
    "FieldType",
    "SelectOption",
    "CompletionEvent",
    "MultiSyncResult",
    "ProgressEvent",
    "RecordOutcome",
    "SyncDetails",
    "SyncOptions",
    "SyncPhase",
    "SyncResult",
    "SyncRun",
    "SyncSummary",
    "SyncTarget",
]
