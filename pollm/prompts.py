"""Prompt rendering for batch translation requests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List

from .structures import Batch, Entry, ProjectContext

DEFAULT_INSTRUCTION_TEMPLATE = """Role: Professional I18n Translator ({target_lang})
Project Context: {project_context}

Task:
Translate the provided gettext messages into {target_lang}.

Strict Requirements:
1. KEY PRESERVATION: Every message is identified by its "id". Your JSON response MUST be an object whose keys are exactly the submitted ids, each appearing once.
2. NO SOURCE REPETITION: Do not echo the source text, only the translations.
3. MULTILINE HANDLING: Preserve the paragraph structure of multiline text, returned as a standard JSON string.
4. PLACEHOLDERS: Keep printf-style placeholders, named placeholders and markup exactly as written.
5. PLURALS: Messages with a "plural_source" expect an array of strings, one per plural form of {target_lang}. All other messages expect a single string.

{custom_prompt}

Output: Return only the JSON object, without commentary or markdown fences."""

CUSTOM_PROMPT_PLACEHOLDER = "{custom_prompt}"


@dataclass(frozen=True)
class CompletionRequest:
    """Payload and response schema for one completion call."""

    system_prompt: str
    user_payload: Dict[str, Any]
    schema: Dict[str, Any]

    @property
    def payload(self) -> Dict[str, Any]:
        return {
            "system_prompt": self.system_prompt,
            "user_payload": self.user_payload,
        }


def to_messages(payload: Dict[str, Any]) -> List[Dict[str, str]]:
    """Chat messages for a request payload."""

    return [
        {"role": "system", "content": payload["system_prompt"]},
        {
            "role": "user",
            "content": json.dumps(payload["user_payload"], ensure_ascii=False),
        },
    ]


def render_instructions(target_language: str, context: ProjectContext) -> str:
    """Fill the instruction template for one target language."""

    custom_block = ""
    if context.custom_prompt:
        custom_block = f"## User Instructions:\n{context.custom_prompt}\n"

    template = context.instruction_template
    if custom_block and CUSTOM_PROMPT_PLACEHOLDER not in template:
        template = f"{custom_block}\n{template}"

    return (
        template.replace("{target_lang}", target_language)
        .replace("{project_context}", context.context)
        .replace(CUSTOM_PROMPT_PLACEHOLDER, custom_block)
        .strip()
    )


def _describe_entry(entry: Entry) -> Dict[str, Any]:
    item: Dict[str, Any] = {"id": entry.key, "source": entry.msgid}
    if entry.msgctxt is not None:
        item["context"] = entry.msgctxt
    if entry.is_plural:
        item["plural_source"] = entry.msgid_plural
    if entry.comment:
        item["note"] = entry.comment
    return item


def build_schema(batch: Batch) -> Dict[str, Any]:
    """JSON schema accepting exactly the identifiers of the batch."""

    properties: Dict[str, Any] = {}
    for entry in batch.entries:
        if entry.is_plural:
            properties[entry.key] = {"type": "array", "items": {"type": "string"}, "minItems": 1}
        else:
            properties[entry.key] = {"type": "string"}
    return {
        "type": "object",
        "properties": properties,
        "required": batch.keys,
        "additionalProperties": False,
    }


def build_request(
    batch: Batch,
    target_language: str,
    context: ProjectContext,
) -> CompletionRequest:
    """Render a batch into a completion request."""

    user_payload = {
        "project_context": context.context,
        "target_language": target_language,
        "entries": [_describe_entry(entry) for entry in batch.entries],
    }
    return CompletionRequest(
        system_prompt=render_instructions(target_language, context),
        user_payload=user_payload,
        schema=build_schema(batch),
    )
