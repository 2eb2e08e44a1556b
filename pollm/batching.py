"""Entry selection and batching utilities."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence

from .errors import ConfigError
from .structures import Batch, Entry


def select_entries(catalog: Iterable[Entry], skip_translated: bool) -> List[Entry]:
    """Return the entries that still need a translation, in catalog order."""

    if not skip_translated:
        return list(catalog)
    return [entry for entry in catalog if not entry.translated]


def iter_batches(entries: Sequence[Entry], batch_size: int) -> Iterator[Batch]:
    """Lazily group entries into batches of at most ``batch_size``."""

    if batch_size <= 0:
        raise ConfigError(f"Batch size must be a positive integer, got {batch_size}.")
    return _generate(entries, batch_size)


def _generate(entries: Sequence[Entry], batch_size: int) -> Iterator[Batch]:
    batch_id = 1
    for start in range(0, len(entries), batch_size):
        yield Batch(batch_id=batch_id, entries=tuple(entries[start : start + batch_size]))
        batch_id += 1

