"""Two-level admission control: files in flight and languages per file."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

from .errors import ConfigError


class ConcurrencyGate:
    """Composes an outer file semaphore with one inner semaphore per file.

    Slots are released in ``finally`` blocks, so a job that fails or raises
    never keeps its slot. ``asyncio.Semaphore`` wakes waiters in FIFO order.
    """

    def __init__(self, *, file_concurrent: int, lang_concurrent: int) -> None:
        if file_concurrent < 1 or lang_concurrent < 1:
            raise ConfigError(
                "file_concurrent and lang_concurrent must both be at least 1 "
                f"(got {file_concurrent} and {lang_concurrent})."
            )
        self.file_concurrent = file_concurrent
        self.lang_concurrent = lang_concurrent
        self._files = asyncio.Semaphore(file_concurrent)
        self._languages: Dict[Hashable, asyncio.Semaphore] = {}
        self._active_jobs: Dict[Hashable, int] = {}
        self.active_files = 0
        self.peak_files = 0
        self.peak_jobs_per_file = 0

    def active_jobs(self, file_key: Hashable) -> int:
        return self._active_jobs.get(file_key, 0)

    @asynccontextmanager
    async def file_slot(self, file_key: Hashable) -> AsyncIterator[None]:
        async with self._files:
            self.active_files += 1
            self.peak_files = max(self.peak_files, self.active_files)
            self._languages[file_key] = asyncio.Semaphore(self.lang_concurrent)
            self._active_jobs[file_key] = 0
            try:
                yield
            finally:
                self.active_files -= 1
                del self._languages[file_key]
                del self._active_jobs[file_key]

    @asynccontextmanager
    async def language_slot(self, file_key: Hashable) -> AsyncIterator[None]:
        semaphore = self._languages.get(file_key)
        if semaphore is None:
            raise RuntimeError(f"File {file_key!r} has not been admitted.")
        async with semaphore:
            self._active_jobs[file_key] += 1
            self.peak_jobs_per_file = max(
                self.peak_jobs_per_file, self._active_jobs[file_key]
            )
            try:
                yield
            finally:
                self._active_jobs[file_key] -= 1
