"""Gettext catalog reading and writing backed by polib."""

from __future__ import annotations

import logging
import pathlib
from typing import Dict, Optional

import polib

from .errors import CatalogError
from .structures import Catalog, Entry

logger = logging.getLogger(__name__)

DEFAULT_METADATA: Dict[str, str] = {
    "Project-Id-Version": "1.0",
    "Last-Translator": "pollm",
    "Language-Team": "pollm",
    "MIME-Version": "1.0",
    "Content-Type": "text/plain; charset=UTF-8",
    "Content-Transfer-Encoding": "8bit",
    "Plural-Forms": "nplurals=2; plural=(n != 1);",
}

# Values xgettext leaves in .pot headers for translators to fill in.
TEMPLATE_PLACEHOLDERS = (
    "CHARSET",
    "INTEGER",
    "EXPRESSION",
    "PACKAGE VERSION",
    "FULL NAME",
    "LL@li.org",
    "YEAR-MO-DA",
)

# polib saves as UTF-8, so the declared charset must match.
FORCED_METADATA: Dict[str, str] = {
    "Content-Type": "text/plain; charset=UTF-8",
    "Content-Transfer-Encoding": "8bit",
}


def _entry_from_po(po_entry: polib.POEntry) -> Entry:
    plural_forms = [
        po_entry.msgstr_plural[index] for index in sorted(po_entry.msgstr_plural)
    ]
    return Entry(
        msgid=po_entry.msgid,
        msgctxt=po_entry.msgctxt,
        msgid_plural=po_entry.msgid_plural or None,
        msgstr=po_entry.msgstr or "",
        msgstr_plural=plural_forms,
        occurrences=list(po_entry.occurrences),
        comment=po_entry.comment or "",
        tcomment=po_entry.tcomment or "",
        flags=list(po_entry.flags),
    )


def _entry_to_po(entry: Entry) -> polib.POEntry:
    kwargs = {
        "msgid": entry.msgid,
        "occurrences": list(entry.occurrences),
        "comment": entry.comment,
        "tcomment": entry.tcomment,
        "flags": list(entry.flags),
    }
    if entry.msgctxt is not None:
        kwargs["msgctxt"] = entry.msgctxt
    if entry.is_plural:
        kwargs["msgid_plural"] = entry.msgid_plural
        forms = entry.msgstr_plural or ["", ""]
        kwargs["msgstr_plural"] = {index: text for index, text in enumerate(forms)}
    else:
        kwargs["msgstr"] = entry.msgstr
    return polib.POEntry(**kwargs)


def read_catalog(path: pathlib.Path) -> Catalog:
    """Parse a .po or .pot file into a Catalog, skipping obsolete entries."""

    if not path.is_file():
        raise CatalogError(f"Catalog not found: {path}")
    try:
        po_file = polib.pofile(str(path))
    except (OSError, ValueError, UnicodeDecodeError) as exc:
        raise CatalogError(f"Could not read catalog {path}: {exc}") from exc

    entries = [_entry_from_po(item) for item in po_file if not item.obsolete]
    logger.debug("Loaded %d entries from %s", len(entries), path)
    return Catalog(
        entries=entries,
        metadata=dict(po_file.metadata),
        header=po_file.header or "",
    )


def write_catalog(
    catalog: Catalog,
    path: pathlib.Path,
    *,
    language: Optional[str] = None,
) -> None:
    """Serialise a Catalog to disk, creating parent directories as needed."""

    po_file = polib.POFile()
    po_file.header = catalog.header
    metadata = dict(DEFAULT_METADATA)
    for name, value in catalog.metadata.items():
        if not value or any(token in value for token in TEMPLATE_PLACEHOLDERS):
            continue
        metadata[name] = value
    metadata.update(FORCED_METADATA)
    if language:
        metadata["Language"] = language
    po_file.metadata = metadata
    for entry in catalog.entries:
        po_file.append(_entry_to_po(entry))

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        po_file.save(str(path))
    except OSError as exc:
        raise CatalogError(f"Could not write catalog {path}: {exc}") from exc
    logger.debug("Wrote %d entries to %s", len(catalog.entries), path)
