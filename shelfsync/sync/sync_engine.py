"""Sync orchestrator - incremental content -> destination table reconciliation.

One run executes sequentially: resolve the field binding (bootstrapping it
when missing), index the destination, classify, then apply creates, updates
and optional deletes in batches with fixed courtesy delays in between.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from ..cache import TTLCache
from ..config import settings
from ..errors import (
    ContentSourceError,
    DestinationIndexError,
    MissingSubjectIdBindingError,
    UnsupportedCategoryError,
)
from ..schemas.binding import FieldBinding
from ..schemas.destination import Credentials, DestinationRecord, DestinationTable
from ..schemas.sync import (
    CompletionEvent,
    MultiSyncResult,
    ProgressEvent,
    RecordOutcome,
    SyncOptions,
    SyncPhase,
    SyncResult,
    SyncRun,
    SyncTarget,
)
from . import registry
from .bindings import FieldBindingStore
from .changes import (
    ChangeSet,
    build_index,
    classify_changes,
    column_types,
    create_payload,
    subject_id_of,
)
from .field_mapper import ContentRecord, as_content_records
from .interfaces import ContentSource, DestinationClient, ProgressReporter
from .reconciler import FieldReconciler
from .registry import SUBJECT_ID_KEY

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# Guard against a destination that keeps handing out page tokens.
MAX_PAGES = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chunks(items: list, size: int) -> list[list]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncRunRegistry:
    """Run status kept in memory for a while after the run finishes."""

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] | None = None):
        ttl = settings.sync_state_ttl_seconds if ttl_seconds is None else ttl_seconds
        clock = clock or time.monotonic
        self._runs = TTLCache(ttl, clock=clock)
        self._latest = TTLCache(ttl, clock=clock)

    def start(self, user_id: str, table: DestinationTable, category: str) -> SyncRun:
        run = SyncRun(
            run_id=uuid.uuid4().hex,
            user_id=user_id,
            table=table,
            category=category,
            started_at=_utcnow(),
        )
        self.save(run)
        return run

    def save(self, run: SyncRun) -> None:
        """Store (or refresh) a run; the retention window restarts."""
        self._runs.set(run.run_id, run)
        self._latest.set((run.user_id, run.table.key), run.run_id)

    def get(self, run_id: str) -> SyncRun | None:
        return self._runs.get(run_id)

    def latest(self, user_id: str, table: DestinationTable) -> SyncRun | None:
        run_id = self._latest.get((user_id, table.key))
        return self._runs.get(run_id) if run_id else None


class _RunState:
    """Mutable bookkeeping for one run."""

    def __init__(self, run: SyncRun, progress: ProgressReporter | None):
        self.run = run
        self.progress = progress
        self.result = SyncResult(run_id=run.run_id, category=run.category, started_at=run.started_at)


class SyncEngine:
    def __init__(
        self,
        destination: DestinationClient,
        bindings: FieldBindingStore,
        reconciler: FieldReconciler | None = None,
        *,
        runs: SyncRunRegistry | None = None,
        sleep: Sleep = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        self.destination = destination
        self.bindings = bindings
        self.reconciler = reconciler or FieldReconciler(destination, sleep=sleep)
        self.runs = runs or SyncRunRegistry()
        self._sleep = sleep
        self._jitter = jitter

    # --- status -----------------------------------------------------------

    def get_run(self, run_id: str) -> SyncRun | None:
        return self.runs.get(run_id)

    def latest_run(self, user_id: str, table: DestinationTable) -> SyncRun | None:
        return self.runs.latest(user_id, table)

    # --- progress ---------------------------------------------------------

    async def _emit(self, state: _RunState, phase: SyncPhase, message: str | None = None) -> None:
        run = state.run
        run.phase = phase
        if state.progress is None:
            return
        event = ProgressEvent(
            run_id=run.run_id, phase=phase, processed=run.processed, total=run.total, message=message,
        )
        try:
            await state.progress.progress(event)
        except Exception as e:
            log.warning("Progress notification failed for run %s: %s", run.run_id, e)

    async def _complete(self, state: _RunState) -> None:
        if state.progress is None:
            return
        result = state.result
        event = CompletionEvent(
            run_id=result.run_id,
            success=result.success,
            items_processed=result.items_processed,
            summary=result.summary,
        )
        try:
            await state.progress.complete(event)
        except Exception as e:
            log.warning("Completion notification failed for run %s: %s", result.run_id, e)

    # --- phases -----------------------------------------------------------

    async def _resolve_binding(
        self, state: _RunState, user_id: str, credentials: Credentials, table: DestinationTable,
        category: str,
    ) -> FieldBinding:
        binding = await self.bindings.get(user_id, table)
        if binding is not None and binding.column_for(SUBJECT_ID_KEY):
            return binding

        await self._emit(state, SyncPhase.BOOTSTRAPPING_BINDINGS, "Resolving destination columns")
        log.info("No field binding for %s on %s; bootstrapping", user_id, table.key)
        binding, batch = await self.reconciler.bootstrap_binding(credentials, table, category)
        for failure in batch.failures:
            state.result.warnings.append(f"field {failure.field_key} unavailable: {failure.error}")

        if not binding.column_for(SUBJECT_ID_KEY):
            detail = next(
                (f.error for f in batch.failures if f.field_key == SUBJECT_ID_KEY), ""
            )
            raise MissingSubjectIdBindingError(detail)
        return await self.bindings.set(user_id, table, binding)

    async def _fetch_destination_records(
        self, state: _RunState, credentials: Credentials, table: DestinationTable,
    ) -> list[DestinationRecord]:
        await self._emit(state, SyncPhase.INDEXING_DESTINATION, "Fetching existing records")
        records: list[DestinationRecord] = []
        page_token: str | None = None

        for page_number in range(1, MAX_PAGES + 1):
            if page_number > 1 and settings.page_delay_seconds > 0:
                await self._sleep(settings.page_delay_seconds)
            try:
                page = await self.destination.list_records(
                    credentials, table, settings.record_page_size, page_token
                )
            except Exception as e:
                raise DestinationIndexError(
                    f"Failed to fetch destination records (page {page_number}): {e}"
                ) from e

            records.extend(page.records)
            log.debug("Fetched page %d (%d records so far)", page_number, len(records))
            if not page.has_more or not page.page_token or page.page_token == page_token:
                break
            page_token = page.page_token

        return records

    async def _batch_pause(self) -> None:
        delay = settings.batch_delay_seconds
        if settings.batch_delay_jitter_seconds > 0:
            delay += self._jitter(0, settings.batch_delay_jitter_seconds)
        if delay > 0:
            await self._sleep(delay)

    def _fail(self, state: _RunState, subject_id: str, record_id: str | None, error: str) -> None:
        state.result.summary.failed += 1
        state.result.details.failed.append(
            RecordOutcome(subject_id=subject_id, record_id=record_id, error=error)
        )

    async def _apply_creates(
        self, state: _RunState, credentials: Credentials, table: DestinationTable,
        changes: ChangeSet, binding: FieldBinding, types: dict[str, int],
    ) -> None:
        if not changes.to_create:
            return
        await self._emit(state, SyncPhase.CREATING, f"Creating {len(changes.to_create)} records")
        batches = _chunks(changes.to_create, settings.record_batch_size)

        for i, batch in enumerate(batches):
            if i > 0:
                await self._batch_pause()
            payloads = [create_payload(record, binding, types) for record in batch]
            try:
                created = await self.destination.batch_create_records(credentials, table, payloads)
            except Exception as e:
                log.warning("Create batch %d/%d failed: %s", i + 1, len(batches), e)
                for record in batch:
                    self._fail(state, record.subject_id, None, str(e))
            else:
                for j, record in enumerate(batch):
                    record_id = created[j].record_id if j < len(created) else None
                    state.result.summary.created += 1
                    state.result.details.created.append(
                        RecordOutcome(subject_id=record.subject_id, record_id=record_id)
                    )
            state.run.processed += len(batch)
            await self._emit(state, SyncPhase.CREATING, f"Create batch {i + 1}/{len(batches)}")

    async def _apply_updates(
        self, state: _RunState, credentials: Credentials, table: DestinationTable, changes: ChangeSet,
    ) -> None:
        if not changes.to_update:
            return
        await self._emit(state, SyncPhase.UPDATING, f"Updating {len(changes.to_update)} records")
        batches = _chunks(changes.to_update, settings.record_batch_size)

        for i, batch in enumerate(batches):
            if i > 0:
                await self._batch_pause()
            updates = [
                DestinationRecord(record_id=u.existing.record_id, fields=u.fields) for u in batch
            ]
            try:
                await self.destination.batch_update_records(credentials, table, updates)
            except Exception as e:
                log.warning("Update batch %d/%d failed: %s", i + 1, len(batches), e)
                for u in batch:
                    self._fail(state, u.record.subject_id, u.existing.record_id, str(e))
            else:
                for u in batch:
                    state.result.summary.updated += 1
                    state.result.details.updated.append(
                        RecordOutcome(subject_id=u.record.subject_id, record_id=u.existing.record_id)
                    )
            state.run.processed += len(batch)
            await self._emit(state, SyncPhase.UPDATING, f"Update batch {i + 1}/{len(batches)}")

    async def _apply_deletes(
        self, state: _RunState, credentials: Credentials, table: DestinationTable,
        changes: ChangeSet, binding: FieldBinding,
    ) -> None:
        candidates = changes.delete_candidates
        if not candidates:
            return
        await self._emit(state, SyncPhase.DELETING, f"Deleting {len(candidates)} records")

        for i, existing in enumerate(candidates):
            if i > 0 and settings.delete_delay_seconds > 0:
                await self._sleep(settings.delete_delay_seconds)
            subject_id = subject_id_of(existing, binding)
            try:
                await self.destination.delete_record(credentials, table, existing.record_id)
            except Exception as e:
                log.warning("Deleting record %s failed: %s", existing.record_id, e)
                self._fail(state, subject_id, existing.record_id, str(e))
            else:
                state.result.summary.deleted += 1
                state.result.details.deleted.append(
                    RecordOutcome(subject_id=subject_id, record_id=existing.record_id)
                )
            state.run.processed += 1
            await self._emit(state, SyncPhase.DELETING)

    # --- entry points -----------------------------------------------------

    async def run(
        self,
        user_id: str,
        credentials: Credentials,
        table: DestinationTable,
        category: str,
        records: list[Any],
        options: SyncOptions | None = None,
        progress: ProgressReporter | None = None,
    ) -> SyncResult:
        """Reconcile ``records`` of one category into ``table``."""
        options = options or SyncOptions()
        run = self.runs.start(user_id, table, category)
        state = _RunState(run, progress)
        result = state.result
        started = time.perf_counter()
        log.info("Sync run %s started: %s -> %s (%s)", run.run_id, user_id, table.key, category)

        try:
            await self._emit(state, SyncPhase.INITIALIZING, "Starting sync")
            if category not in registry.supported_categories():
                raise UnsupportedCategoryError(category)

            content: list[ContentRecord] = as_content_records(records, category)
            if options.limit is not None:
                content = content[:options.limit]

            binding = await self._resolve_binding(state, user_id, credentials, table, category)
            existing = await self._fetch_destination_records(state, credentials, table)
            index, index_warnings = build_index(existing, binding)
            for warning in index_warnings:
                log.warning(warning)
            result.warnings.extend(index_warnings)

            await self._emit(state, SyncPhase.CLASSIFYING, f"Classifying {len(content)} records")
            changes = classify_changes(content, index, binding, category, full_sync=options.full_sync)
            result.warnings.extend(changes.warnings)

            summary = result.summary
            summary.total = len(content)
            summary.unchanged = len(changes.unchanged)
            summary.skipped = len(changes.skipped)
            summary.delete_candidates = len(changes.delete_candidates)
            run.total = len(changes.to_create) + len(changes.to_update)
            if options.delete_orphans:
                run.total += len(changes.delete_candidates)

            types = column_types(binding, category)
            await self._apply_creates(state, credentials, table, changes, binding, types)
            await self._apply_updates(state, credentials, table, changes)
            if options.delete_orphans:
                await self._apply_deletes(state, credentials, table, changes, binding)
            elif changes.delete_candidates:
                log.info(
                    "%d destination records have no content counterpart; deletion disabled",
                    len(changes.delete_candidates),
                )

        except Exception as e:
            run.phase = SyncPhase.FAILED
            run.error = str(e)
            run.finished_at = _utcnow()
            self.runs.save(run)
            result.success = False
            result.finished_at = run.finished_at
            result.duration_seconds = time.perf_counter() - started
            log.error("Sync run %s failed: %s", run.run_id, e)
            await self._complete(state)
            raise

        result.items_processed = result.summary.total
        result.success = result.summary.failed == 0
        result.finished_at = _utcnow()
        result.duration_seconds = time.perf_counter() - started

        run.summary = result.summary
        run.finished_at = result.finished_at
        await self._emit(state, SyncPhase.DONE, "Sync finished")
        self.runs.save(run)
        await self._complete(state)

        s = result.summary
        log.info(
            "Sync run %s done: %d created, %d updated, %d deleted, %d unchanged, %d failed",
            run.run_id, s.created, s.updated, s.deleted, s.unchanged, s.failed,
        )
        return result

    async def sync_category(
        self,
        user_id: str,
        credentials: Credentials,
        target: SyncTarget,
        source: ContentSource,
        options: SyncOptions | None = None,
        progress: ProgressReporter | None = None,
    ) -> SyncResult:
        """Fetch one category from ``source`` and run it; retrieval failure is fatal."""
        options = options or SyncOptions()
        try:
            records = await source.fetch(user_id, target.category, limit=options.limit)
        except ContentSourceError:
            raise
        except Exception as e:
            raise ContentSourceError(f"Failed to fetch {target.category} for {user_id}: {e}") from e
        return await self.run(
            user_id, credentials, target.table, target.category, records, options, progress
        )

    async def sync_categories(
        self,
        user_id: str,
        credentials: Credentials,
        targets: list[SyncTarget],
        source: ContentSource,
        options: SyncOptions | None = None,
        progress: ProgressReporter | None = None,
    ) -> MultiSyncResult:
        """Run several categories in turn; a category whose retrieval fails is skipped."""
        multi = MultiSyncResult()
        for target in targets:
            try:
                multi.results[target.category] = await self.sync_category(
                    user_id, credentials, target, source, options, progress
                )
            except ContentSourceError as e:
                log.warning("Skipping %s: %s", target.category, e)
                multi.skipped[target.category] = str(e)
            except Exception as e:
                log.error("Sync of %s failed: %s", target.category, e)
                multi.errors[target.category] = str(e)
        return multi
