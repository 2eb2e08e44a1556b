"""High-level orchestration of all (file, language) translation jobs."""

from __future__ import annotations

import asyncio
import glob
import logging
import pathlib
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from .catalogs import read_catalog
from .configuration import AppConfig
from .errors import CatalogError, ErrorRecord
from .gate import ConcurrencyGate
from .policy import RetryPolicy
from .providers import CompletionClient
from .structures import Catalog, JobState, ProjectContext
from .translator import JobOutcome, TranslationJob, build_output_path

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_CONFIG_ERROR = 2


@dataclass
class RunSummary:
    """Aggregated report of a run."""

    files_processed: int = 0
    outcomes: List[JobOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    dry_run: bool = False
    base_dir: Optional[pathlib.Path] = None

    @property
    def jobs_by_state(self) -> Counter:
        return Counter(outcome.state for outcome in self.outcomes)

    @property
    def translated_entries(self) -> int:
        return sum(outcome.translated_entries for outcome in self.outcomes)

    @property
    def untranslated_entries(self) -> int:
        return sum(outcome.untranslated_entries for outcome in self.outcomes)

    @property
    def failed_jobs(self) -> List[JobOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def exit_code(self) -> int:
        return EXIT_JOB_FAILED if self.failed_jobs else EXIT_OK

    def display_path(self, path: pathlib.Path) -> str:
        """Path relative to the base directory when it lies beneath it."""

        if self.base_dir is not None and path.is_relative_to(self.base_dir):
            return path.relative_to(self.base_dir).as_posix()
        return str(path)


class Orchestrator:
    """Schedules one job per input file and target language through the gate."""

    def __init__(
        self,
        config: AppConfig,
        *,
        client: CompletionClient,
        gate: ConcurrencyGate,
        retry_policy: RetryPolicy,
        dry_run: bool = False,
        force_write: bool = False,
    ) -> None:
        self.config = config
        self.context: ProjectContext = config.project_context()
        self.client = client
        self.gate = gate
        self.retry_policy = retry_policy
        self.dry_run = dry_run
        self.force_write = force_write

    def discover_files(self) -> List[pathlib.Path]:
        pattern = self.config.base_dir / self.config.translation.input_pattern
        paths = sorted(
            pathlib.Path(match)
            for match in glob.glob(str(pattern), recursive=True)
            if pathlib.Path(match).is_file()
        )
        return paths

    async def run(self) -> RunSummary:
        start_time = time.time()
        summary = RunSummary(dry_run=self.dry_run, base_dir=self.config.base_dir)

        paths = self.discover_files()
        if not paths:
            logger.warning("No files found matching %s", self.config.translation.input_pattern)
            summary.elapsed_seconds = time.time() - start_time
            return summary

        logger.info(
            "Found %d file(s); target languages: %s",
            len(paths),
            ", ".join(self.config.translation.target_languages),
        )
        per_file = await asyncio.gather(*(self._run_file(path) for path in paths))

        summary.files_processed = len(paths)
        for outcomes in per_file:
            summary.outcomes.extend(outcomes)
        summary.elapsed_seconds = time.time() - start_time
        return summary

    async def _run_file(self, path: pathlib.Path) -> List[JobOutcome]:
        languages = self.config.translation.target_languages
        async with self.gate.file_slot(path):
            try:
                source = read_catalog(path)
            except CatalogError as exc:
                logger.error("%s", exc)
                return [self._unreadable(path, language, exc) for language in languages]

            jobs = [self._create_job(path, source, language) for language in languages]
            return list(await asyncio.gather(*(self._run_job(path, job) for job in jobs)))

    async def _run_job(self, path: pathlib.Path, job: TranslationJob) -> JobOutcome:
        async with self.gate.language_slot(path):
            return await job.run()

    def _create_job(self, path: pathlib.Path, source: Catalog, language: str) -> TranslationJob:
        return TranslationJob(
            input_path=path,
            source=source,
            language=language,
            output_path=build_output_path(path, language, self.config.translation.output_pattern),
            context=self.context,
            client=self.client,
            retry_policy=self.retry_policy,
            dry_run=self.dry_run,
            force_write=self.force_write,
        )

    def _unreadable(self, path: pathlib.Path, language: str, exc: CatalogError) -> JobOutcome:
        return JobOutcome(
            input_path=path,
            output_path=build_output_path(path, language, self.config.translation.output_pattern),
            language=language,
            state=JobState.FAILED,
            errors=[ErrorRecord(reason="catalog", message=str(exc))],
        )
