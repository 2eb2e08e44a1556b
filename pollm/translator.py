"""Translation of one catalog file into one target language."""

from __future__ import annotations

import logging
import pathlib
import time
from dataclasses import dataclass, field
from typing import List

from .batching import iter_batches, select_entries
from .catalogs import read_catalog, write_catalog
from .errors import CatalogError, ErrorRecord, ServiceError, ServiceErrorKind
from .policy import RetryPolicy
from .prompts import build_request
from .providers import CompletionClient
from .reconciler import BatchResult, SchemaViolation, reconcile, violation_result
from .structures import Batch, Catalog, JobState, ProjectContext

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 5


@dataclass
class JobOutcome:
    """Report returned after a job reaches a terminal state."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    language: str
    state: JobState
    selected_entries: int = 0
    translated_entries: int = 0
    untranslated_entries: int = 0
    total_batches: int = 0
    written: bool = False
    elapsed_seconds: float = 0.0
    errors: List[ErrorRecord] = field(default_factory=list)

    @property
    def failure_reason(self) -> str | None:
        if self.state is not JobState.FAILED or not self.errors:
            return None
        return self.errors[-1].reason

    @property
    def succeeded(self) -> bool:
        if self.state is JobState.COMPLETED:
            return True
        return self.state is JobState.PARTIALLY_FAILED and self.translated_entries > 0


def build_output_path(input_path: pathlib.Path, language: str, pattern: str) -> pathlib.Path:
    """Substitute ``{name}`` and ``{lang}`` into the output pattern."""

    relative = pattern.replace("{lang}", language).replace("{name}", input_path.stem)
    return input_path.parent / relative


class TranslationJob:
    """Drives batching, completion calls, reconciliation and merging."""

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        source: Catalog,
        language: str,
        output_path: pathlib.Path,
        context: ProjectContext,
        client: CompletionClient,
        retry_policy: RetryPolicy,
        dry_run: bool = False,
        force_write: bool = False,
    ) -> None:
        self.input_path = input_path
        self.source = source
        self.language = language
        self.output_path = output_path
        self.context = context
        self.client = client
        self.retry_policy = retry_policy
        self.dry_run = dry_run
        self.force_write = force_write
        self.state = JobState.PENDING

    @property
    def label(self) -> str:
        return f"{self.input_path.name} [{self.language}]"

    @property
    def should_write(self) -> bool:
        return not self.dry_run or self.force_write

    async def run(self) -> JobOutcome:
        start_time = time.time()
        self.state = JobState.RUNNING
        outcome = JobOutcome(
            input_path=self.input_path,
            output_path=self.output_path,
            language=self.language,
            state=self.state,
        )
        try:
            return await self._run(outcome, start_time)
        except Exception as exc:
            logger.exception("%s: unexpected error", self.label)
            outcome.errors.append(ErrorRecord(reason="unexpected", message=str(exc) or type(exc).__name__))
            return self._finish(outcome, JobState.FAILED, start_time)

    async def _run(self, outcome: JobOutcome, start_time: float) -> JobOutcome:
        try:
            working = self._working_catalog()
        except CatalogError as exc:
            outcome.errors.append(ErrorRecord(reason="catalog", message=str(exc)))
            return self._finish(outcome, JobState.FAILED, start_time)

        entries = working.index()
        selected = select_entries(working, self.context.skip_translated)
        outcome.selected_entries = len(selected)
        previews: List[str] = []
        failed = False

        for batch in iter_batches(selected, self.context.batch_size):
            outcome.total_batches += 1
            try:
                result = await self._process_batch(batch)
            except ServiceError as exc:
                logger.error("%s: batch %d failed: %s", self.label, batch.batch_id, exc)
                outcome.errors.append(ErrorRecord(reason=exc.kind.value, message=str(exc)))
                outcome.untranslated_entries += len(selected) - (
                    outcome.translated_entries + outcome.untranslated_entries
                )
                failed = True
                break

            if result.violation is not None:
                outcome.errors.append(
                    ErrorRecord(
                        reason="schema_violation",
                        message=f"Batch {batch.batch_id}: {result.violation.reason}",
                    )
                )
            for key, text in result.translated.items():
                entries[key].apply(text)
                if len(previews) < PREVIEW_LIMIT:
                    previews.append(f"{key} => {text}")
            outcome.translated_entries += len(result.translated)
            outcome.untranslated_entries += result.untranslated_count

        if self.dry_run:
            self._log_preview(previews, outcome.translated_entries)

        if failed:
            state = JobState.FAILED
        elif outcome.untranslated_entries or outcome.errors:
            state = JobState.PARTIALLY_FAILED
        else:
            state = JobState.COMPLETED

        if self.should_write:
            try:
                write_catalog(working, self.output_path, language=self.language)
                outcome.written = True
            except CatalogError as exc:
                outcome.errors.append(ErrorRecord(reason="catalog", message=str(exc)))
                state = JobState.FAILED

        return self._finish(outcome, state, start_time)

    def _working_catalog(self) -> Catalog:
        """Copy the source and carry over translations from an existing output."""

        working = self.source.copy()
        if not self.output_path.exists():
            return working

        previous = read_catalog(self.output_path).index()
        carried = 0
        for entry in working:
            existing = previous.get(entry.key)
            if existing is None or not existing.translated:
                continue
            if entry.is_plural:
                entry.msgstr_plural = list(existing.msgstr_plural)
            else:
                entry.msgstr = existing.msgstr
            carried += 1
        logger.debug("%s: carried over %d existing translations", self.label, carried)
        return working

    async def _process_batch(self, batch: Batch) -> BatchResult:
        request = build_request(batch, self.language, self.context)
        try:
            reply = await self.retry_policy.call(
                lambda: self.client.complete(request.payload, request.schema),
                label=f"{self.label} batch {batch.batch_id}",
            )
        except ServiceError as exc:
            if exc.kind is ServiceErrorKind.MALFORMED_RESPONSE:
                return violation_result(batch, SchemaViolation(str(exc)))
            raise
        result = reconcile(batch, reply)
        logger.info(
            "%s: batch %d reconciled (%d translated, %d untranslated)",
            self.label,
            batch.batch_id,
            len(result.translated),
            result.untranslated_count,
        )
        return result

    def _log_preview(self, previews: List[str], total: int) -> None:
        logger.info("--- Dry run preview (%s) ---", self.label)
        for index, line in enumerate(previews, start=1):
            logger.info("#%02d %s", index, line)
        if total > len(previews):
            logger.info("... and %d more", total - len(previews))

    def _finish(self, outcome: JobOutcome, state: JobState, start_time: float) -> JobOutcome:
        self.state = state
        outcome.state = state
        outcome.elapsed_seconds = time.time() - start_time
        logger.info(
            "%s: %s (%d translated, %d untranslated)",
            self.label,
            state.value,
            outcome.translated_entries,
            outcome.untranslated_entries,
        )
        return outcome
