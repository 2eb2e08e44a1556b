"""Validation of structured replies and mapping back onto batch entries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Union

from .structures import Batch, Entry, Outcome, Translated, TranslationText, Untranslated

logger = logging.getLogger(__name__)

MISSING_ENTRY = "missing_entry"
SCHEMA_VIOLATION = "schema_violation"


@dataclass(frozen=True)
class ValidReply:
    translations: Mapping[str, TranslationText]
    ignored_keys: int = 0


@dataclass(frozen=True)
class SchemaViolation:
    reason: str


ReplyValidation = Union[ValidReply, SchemaViolation]


@dataclass
class BatchResult:
    """Reconciled outcomes for every entry of one batch."""

    batch_id: int
    outcomes: Dict[str, Outcome] = field(default_factory=dict)
    violation: SchemaViolation | None = None

    @property
    def translated(self) -> Dict[str, TranslationText]:
        return {
            key: outcome.text
            for key, outcome in self.outcomes.items()
            if isinstance(outcome, Translated)
        }

    @property
    def untranslated_count(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if isinstance(outcome, Untranslated))


def strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    # Drop opening fence and optional language hint.
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


def _coerce_value(entry: Entry, value: Any) -> TranslationText | None:
    if entry.is_plural:
        if isinstance(value, list) and value and all(isinstance(item, str) for item in value):
            return tuple(value)
        return None
    if isinstance(value, str):
        return value
    return None


def validate_reply(batch: Batch, reply: Union[str, Mapping[str, Any]]) -> ReplyValidation:
    """Check a reply against the schema declared for ``batch``.

    Keys outside the batch are ignored; absent keys are left for
    :func:`reconcile` to report per entry.
    """

    if isinstance(reply, str):
        try:
            reply = json.loads(strip_code_fence(reply))
        except json.JSONDecodeError as exc:
            return SchemaViolation(f"reply is not valid JSON: {exc}")

    if not isinstance(reply, Mapping):
        return SchemaViolation(
            f"reply must be a JSON object, got {type(reply).__name__}"
        )

    translations: Dict[str, TranslationText] = {}
    for entry in batch.entries:
        if entry.key not in reply:
            continue
        value = _coerce_value(entry, reply[entry.key])
        if value is None:
            expected = "array of strings" if entry.is_plural else "string"
            return SchemaViolation(f"value for {entry.key!r} is not a {expected}")
        translations[entry.key] = value
    ignored = len(set(reply) - set(batch.keys))
    return ValidReply(translations=translations, ignored_keys=ignored)


def reconcile(batch: Batch, reply: Union[str, Mapping[str, Any]]) -> BatchResult:
    """Map a reply onto the batch, one outcome per submitted entry."""

    validation = validate_reply(batch, reply)
    if isinstance(validation, SchemaViolation):
        logger.warning(
            "Batch %d: schema violation (%s); %d entries left untranslated",
            batch.batch_id,
            validation.reason,
            len(batch),
        )
        return violation_result(batch, validation)

    result = BatchResult(batch_id=batch.batch_id)
    for entry in batch.entries:
        if entry.key in validation.translations:
            result.outcomes[entry.key] = Translated(validation.translations[entry.key])
        else:
            result.outcomes[entry.key] = Untranslated(MISSING_ENTRY)

    missing = result.untranslated_count
    extra = validation.ignored_keys
    if missing or extra:
        logger.warning(
            "Batch %d: %d missing, %d unexpected keys ignored",
            batch.batch_id,
            missing,
            extra,
        )
    return result


def violation_result(batch: Batch, violation: SchemaViolation) -> BatchResult:
    """Result marking every entry of the batch untranslated."""

    return BatchResult(
        batch_id=batch.batch_id,
        outcomes={entry.key: Untranslated(SCHEMA_VIOLATION) for entry in batch.entries},
        violation=violation,
    )

