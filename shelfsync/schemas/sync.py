"""Sync run schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .destination import DestinationTable


class SyncPhase(str, Enum):
    INITIALIZING = "initializing"
    BOOTSTRAPPING_BINDINGS = "bootstrapping_bindings"
    INDEXING_DESTINATION = "indexing_destination"
    CLASSIFYING = "classifying"
    CREATING = "creating"
    UPDATING = "updating"
    DELETING = "deleting"
    DONE = "done"
    FAILED = "failed"


class SyncOptions(BaseModel):
    full_sync: bool = False
    delete_orphans: bool = False
    limit: int | None = None


class SyncTarget(BaseModel):
    category: str
    table: DestinationTable


class SyncSummary(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped: int = 0
    delete_candidates: int = 0


class RecordOutcome(BaseModel):
    subject_id: str
    record_id: str | None = None
    error: str | None = None


class SyncDetails(BaseModel):
    created: list[RecordOutcome] = []
    updated: list[RecordOutcome] = []
    deleted: list[RecordOutcome] = []
    failed: list[RecordOutcome] = []


class SyncResult(BaseModel):
    run_id: str
    category: str
    success: bool = True
    items_processed: int = 0
    summary: SyncSummary = Field(default_factory=SyncSummary)
    details: SyncDetails = Field(default_factory=SyncDetails)
    warnings: list[str] = []
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float = 0.0


class MultiSyncResult(BaseModel):
    results: dict[str, SyncResult] = {}
    skipped: dict[str, str] = {}
    errors: dict[str, str] = {}

    @property
    def success(self) -> bool:
        return not self.errors and all(r.success for r in self.results.values())


class ProgressEvent(BaseModel):
    run_id: str
    phase: SyncPhase
    processed: int = 0
    total: int = 0
    message: str | None = None


class CompletionEvent(BaseModel):
    run_id: str
    success: bool
    items_processed: int = 0
    summary: SyncSummary = Field(default_factory=SyncSummary)


class SyncRun(BaseModel):
    run_id: str
    user_id: str
    table: DestinationTable
    category: str
    phase: SyncPhase = SyncPhase.INITIALIZING
    processed: int = 0
    total: int = 0
    started_at: datetime
    finished_at: datetime | None = None
    summary: SyncSummary | None = None
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.phase in (SyncPhase.DONE, SyncPhase.FAILED)
