from __future__ import annotations

import asyncio
import pathlib
from typing import Any, Callable, Dict, Iterable, List, Optional

from pollm.catalogs import write_catalog
from pollm.configuration import AppConfig
from pollm.providers import CompletionClient
from pollm.structures import Catalog, Entry, ProjectContext
from pollm.prompts import DEFAULT_INSTRUCTION_TEMPLATE


def entry(msgid: str, msgstr: str = "", **kwargs: Any) -> Entry:
    return Entry(msgid=msgid, msgstr=msgstr, **kwargs)


def catalog(*entries: Entry) -> Catalog:
    return Catalog(entries=list(entries))


def context(batch_size: int = 2, *, skip_translated: bool = True, **kwargs: Any) -> ProjectContext:
    return ProjectContext(
        context=kwargs.pop("context", "A budgeting app"),
        instruction_template=kwargs.pop("instruction_template", DEFAULT_INSTRUCTION_TEMPLATE),
        batch_size=batch_size,
        skip_translated=skip_translated,
        **kwargs,
    )


def write_po(path: pathlib.Path, entries: Iterable[Entry]) -> pathlib.Path:
    write_catalog(Catalog(entries=list(entries)), path)
    return path


def make_config(base_dir: pathlib.Path, **translation: Any) -> AppConfig:
    settings: Dict[str, Any] = {
        "target_languages": ["fr"],
        "input_pattern": "*.po",
        "output_pattern": "{lang}/{name}.po",
        "batch_size": 2,
        "retry_backoff": [0],
    }
    settings.update(translation)
    return AppConfig.model_validate(
        {
            "llm": {"api_key": "test-key"},
            "translation": settings,
            "project": {"context": "Tests", "base_path": "."},
            "config_dir": base_dir,
        }
    )


def prefix_translations(payload: Dict[str, Any], *, omit: Iterable[str] = ()) -> Dict[str, Any]:
    """Reply translating every submitted entry as ``<lang>:<source>``."""

    user_payload = payload["user_payload"]
    language = user_payload["target_language"]
    reply: Dict[str, Any] = {}
    for item in user_payload["entries"]:
        if item["id"] in omit:
            continue
        if "plural_source" in item:
            reply[item["id"]] = [f"{language}:{item['source']}", f"{language}:{item['plural_source']}"]
        else:
            reply[item["id"]] = f"{language}:{item['source']}"
    return reply


class ScriptedClient(CompletionClient):
    """Replays scripted replies; exceptions are raised, callables get the payload."""

    def __init__(self, *script: Any, default: Optional[Callable[[Dict[str, Any]], Any]] = None) -> None:
        self.script: List[Any] = list(script)
        self.default = default or prefix_translations
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, payload: Dict[str, Any], schema: Dict[str, Any]) -> Any:
        self.calls.append(payload)
        await asyncio.sleep(0)
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(payload)
        return step
