"""Field reconciliation - make destination columns match field templates.

Templates are processed one at a time. Consecutive destination-mutating
calls are separated by a fixed delay to stay under the destination's rate
limits; this loop must stay sequential.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import settings
from ..errors import BatchLimitExceededError, UnsupportedCategoryError, UnsupportedFieldError
from ..schemas.binding import FieldBinding
from ..schemas.destination import Column, Credentials, DestinationTable
from ..schemas.fields import (
    BatchFieldOperationResult,
    BatchOperationSummary,
    ConfigurationChange,
    FieldFailure,
    FieldMatchAnalysis,
    FieldOperationOptions,
    FieldOperationResult,
    FieldTemplate,
)
from . import registry
from .interfaces import DestinationClient
from .matchers import FieldMatcher, build_matcher

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# Property keys whose drift changes how values are stored or displayed.
CRITICAL_PROPERTIES = {"type", "options"}


def _option_pairs(options: Any) -> list[tuple[str, int | None]]:
    pairs: list[tuple[str, int | None]] = []
    if not isinstance(options, list):
        return pairs
    for option in options:
        if isinstance(option, dict) and isinstance(option.get("name"), str):
            color = option.get("color")
            pairs.append((option["name"], color if isinstance(color, int) else None))
    return pairs


def _property_equal(key: str, live: Any, desired: Any) -> bool:
    if key == "options":
        return _option_pairs(live) == _option_pairs(desired)
    return live == desired


def compare_field(column: Column, template: FieldTemplate) -> list[ConfigurationChange]:
    """Differences between a live column and its template.

    Only properties the template defines are compared; anything else a user
    configured on the column is left alone.
    """
    changes: list[ConfigurationChange] = []

    if column.type != int(template.type):
        changes.append(ConfigurationChange(
            property="type", from_value=column.type, to_value=int(template.type), severity="critical",
        ))
    if column.ui_type is not None and column.ui_type != template.ui_type:
        changes.append(ConfigurationChange(
            property="ui_type", from_value=column.ui_type, to_value=template.ui_type,
        ))

    live_property = column.property or {}
    for key, desired in (template.property or {}).items():
        live = live_property.get(key)
        if not _property_equal(key, live, desired):
            changes.append(ConfigurationChange(
                property=f"property.{key}",
                from_value=live,
                to_value=desired,
                severity="critical" if key in CRITICAL_PROPERTIES else "minor",
            ))
    return changes


def analyze_field(column: Column, template: FieldTemplate) -> FieldMatchAnalysis:
    differences = compare_field(column, template)
    if not differences:
        return FieldMatchAnalysis(is_full_match=True)

    critical = sum(1 for d in differences if d.severity == "critical")
    minor = len(differences) - critical
    score = max(0.0, 1.0 - critical * 0.3 - minor * 0.1)
    type_changed = any(d.property == "type" for d in differences)
    return FieldMatchAnalysis(
        is_full_match=False,
        differences=differences,
        match_score=round(score, 2),
        recommended_action="recreate_field" if type_changed else "update_field",
    )


def corrective_payload(column: Column, template: FieldTemplate,
                       changes: list[ConfigurationChange]) -> dict[str, Any]:
    """Update body carrying only the differing properties."""
    payload: dict[str, Any] = {"field_name": column.field_name, "type": int(template.type)}
    changed = {c.property for c in changes}
    if "ui_type" in changed or "type" in changed:
        payload["ui_type"] = template.ui_type

    prop = {
        key: value
        for key, value in (template.property or {}).items()
        if f"property.{key}" in changed
    }
    if prop:
        payload["property"] = prop
    return payload


class _Pacer:
    """Sleeps between consecutive destination-mutating calls."""

    def __init__(self, delay: float, sleep: Sleep):
        self.delay = delay
        self._sleep = sleep
        self._mutated = False

    async def before_mutation(self) -> None:
        if self._mutated and self.delay > 0:
            await self._sleep(self.delay)
        self._mutated = True


class FieldReconciler:
    def __init__(
        self,
        destination: DestinationClient,
        matcher: FieldMatcher | None = None,
        *,
        batch_limit: int | None = None,
        operation_delay: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.destination = destination
        self.matcher = matcher or build_matcher(settings.field_matcher)
        self.batch_limit = settings.field_batch_limit if batch_limit is None else batch_limit
        self.operation_delay = (
            settings.field_operation_delay_seconds if operation_delay is None else operation_delay
        )
        self._sleep = sleep

    def _delay_for(self, options: FieldOperationOptions) -> float:
        return self.operation_delay if options.operation_delay is None else options.operation_delay

    async def ensure_field(
        self,
        credentials: Credentials,
        table: DestinationTable,
        template: FieldTemplate,
        options: FieldOperationOptions | None = None,
    ) -> FieldOperationResult:
        """Make sure one column matches ``template``; create or correct it as needed."""
        options = options or FieldOperationOptions()
        columns = await self.destination.list_fields(credentials, table)
        pacer = _Pacer(self._delay_for(options), self._sleep)
        return await self._ensure(credentials, table, template, options, columns, pacer)

    async def _ensure(
        self,
        credentials: Credentials,
        table: DestinationTable,
        template: FieldTemplate,
        options: FieldOperationOptions,
        columns: list[Column],
        pacer: _Pacer,
    ) -> FieldOperationResult:
        started = time.perf_counter()
        warnings: list[str] = []

        existing = self.matcher.match(template, columns)
        if existing is None:
            await pacer.before_mutation()
            column = await self.destination.create_field(credentials, table, template.to_api_payload())
            log.debug("Created column %r (%s) for %s", template.name, column.field_id, template.key)
            return FieldOperationResult(
                field_key=template.key,
                column=column,
                operation="created",
                processing_time=time.perf_counter() - started,
            )

        if existing.field_name != template.name:
            warnings.append(
                f"column {existing.field_name!r} matched template {template.name!r} by similarity"
            )

        changes = compare_field(existing, template)
        if not changes:
            log.debug("Column %r already matches %s", existing.field_name, template.key)
            return FieldOperationResult(
                field_key=template.key,
                column=existing,
                operation="unchanged",
                warnings=warnings,
                processing_time=time.perf_counter() - started,
            )

        if options.strategy == "skip_existing":
            warnings.append(
                f"column {existing.field_name!r} differs from template in "
                + ", ".join(c.property for c in changes)
            )
            return FieldOperationResult(
                field_key=template.key,
                column=existing,
                operation="unchanged",
                changes=changes,
                warnings=warnings,
                processing_time=time.perf_counter() - started,
            )

        await pacer.before_mutation()
        column = await self.destination.update_field(
            credentials, table, existing.field_id, corrective_payload(existing, template, changes)
        )
        log.info(
            "Corrected column %r (%s): %s",
            existing.field_name, existing.field_id, ", ".join(c.property for c in changes),
        )
        return FieldOperationResult(
            field_key=template.key,
            column=column,
            operation="updated",
            changes=changes,
            warnings=warnings,
            processing_time=time.perf_counter() - started,
        )

    async def ensure_fields_batch(
        self,
        credentials: Credentials,
        table: DestinationTable,
        templates: list[FieldTemplate],
        options: FieldOperationOptions | None = None,
    ) -> BatchFieldOperationResult:
        """Ensure several templates sequentially, isolating per-template failures."""
        if len(templates) > self.batch_limit:
            raise BatchLimitExceededError(len(templates), self.batch_limit)

        options = options or FieldOperationOptions()
        batch = BatchFieldOperationResult()
        if not templates:
            return batch

        log.info("Ensuring %d fields on table %s", len(templates), table.table_id)
        columns = list(await self.destination.list_fields(credentials, table))
        pacer = _Pacer(self._delay_for(options), self._sleep)
        started = time.perf_counter()

        for template in templates:
            try:
                result = await self._ensure(credentials, table, template, options, columns, pacer)
            except Exception as e:
                log.warning("Field %r (%s) failed: %s", template.name, template.key, e)
                batch.failures.append(FieldFailure(
                    field_key=template.key, field_name=template.name, error=str(e),
                ))
                continue

            batch.results.append(result)
            if result.operation != "unchanged":
                columns = [c for c in columns if c.field_id != result.column.field_id]
                columns.append(result.column)

        total_time = time.perf_counter() - started
        summary = BatchOperationSummary(
            total=len(templates),
            created=sum(1 for r in batch.results if r.operation == "created"),
            updated=sum(1 for r in batch.results if r.operation == "updated"),
            unchanged=sum(1 for r in batch.results if r.operation == "unchanged"),
            failed=len(batch.failures),
            total_processing_time=total_time,
            average_processing_time=total_time / len(templates),
        )
        batch.summary = summary
        log.info(
            "Field batch done: %d created, %d updated, %d unchanged, %d failed",
            summary.created, summary.updated, summary.unchanged, summary.failed,
        )
        return batch

    async def ensure_named_fields(
        self,
        credentials: Credentials,
        table: DestinationTable,
        category: str,
        field_keys: list[str],
        options: FieldOperationOptions | None = None,
    ) -> BatchFieldOperationResult:
        """Ensure explicitly requested fields; an unknown key is fatal."""
        if category not in registry.supported_categories():
            raise UnsupportedCategoryError(category)
        templates: list[FieldTemplate] = []
        for key in field_keys:
            template = registry.template_for(category, key)
            if template is None:
                raise UnsupportedFieldError(key, category)
            templates.append(template)
        return await self.ensure_fields_batch(credentials, table, templates, options)

    async def bootstrap_binding(
        self,
        credentials: Credentials,
        table: DestinationTable,
        category: str,
        options: FieldOperationOptions | None = None,
    ) -> tuple[FieldBinding, BatchFieldOperationResult]:
        """Reconcile the full template set of a category and return the binding."""
        templates = registry.templates_for(category)
        batch = await self.ensure_fields_batch(credentials, table, templates, options)
        binding = FieldBinding(fields=batch.column_ids(), category=category)
        return binding, batch
