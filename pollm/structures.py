"""Core data structures for the pollm translator."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

CONTEXT_SEPARATOR = "\x04"


@dataclass
class Entry:
    """A single translatable message of a catalog."""

    msgid: str
    msgctxt: Optional[str] = None
    msgid_plural: Optional[str] = None
    msgstr: str = ""
    msgstr_plural: List[str] = field(default_factory=list)
    occurrences: List[Tuple[str, str]] = field(default_factory=list)
    comment: str = ""
    tcomment: str = ""
    flags: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Identifier of the entry, disambiguated by its context."""

        if self.msgctxt is None:
            return self.msgid
        return f"{self.msgctxt}{CONTEXT_SEPARATOR}{self.msgid}"

    @property
    def is_plural(self) -> bool:
        return self.msgid_plural is not None

    @property
    def translated(self) -> bool:
        if self.is_plural:
            return bool(self.msgstr_plural) and all(self.msgstr_plural)
        return bool(self.msgstr)

    def apply(self, translation: "TranslationText") -> None:
        if self.is_plural:
            if isinstance(translation, str):
                translation = [translation]
            self.msgstr_plural = list(translation)
        else:
            if not isinstance(translation, str):
                translation = translation[0] if translation else ""
            self.msgstr = translation


@dataclass
class Catalog:
    """Ordered entries of one catalog file plus its header."""

    entries: List[Entry] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    header: str = ""

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def copy(self) -> "Catalog":
        return copy.deepcopy(self)

    def index(self) -> Dict[str, Entry]:
        return {entry.key: entry for entry in self.entries}


@dataclass(frozen=True)
class Batch:
    """A bounded group of entries sent together in one completion request."""

    batch_id: int
    entries: Tuple[Entry, ...]

    @property
    def keys(self) -> List[str]:
        return [entry.key for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class ProjectContext:
    """Read-only settings shared by every job of a run."""

    context: str
    instruction_template: str
    batch_size: int
    skip_translated: bool = True
    custom_prompt: Optional[str] = None


TranslationText = Union[str, Tuple[str, ...]]


@dataclass(frozen=True)
class Translated:
    text: TranslationText


@dataclass(frozen=True)
class Untranslated:
    reason: str


Outcome = Union[Translated, Untranslated]


class JobState(Enum):
    """Lifecycle of a translation job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {JobState.COMPLETED, JobState.PARTIALLY_FAILED, JobState.FAILED}
