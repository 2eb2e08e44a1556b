"""Completion client abstractions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Union

import openai

from .configuration import AppConfig
from .errors import ConfigError, ServiceError, ServiceErrorKind
from .prompts import to_messages

logger = logging.getLogger(__name__)

CompletionReply = Union[str, Mapping[str, Any]]


class CompletionClient(ABC):
    """Contract of the remote language-generation service."""

    @abstractmethod
    async def complete(
        self,
        payload: Dict[str, Any],
        schema: Dict[str, Any],
    ) -> CompletionReply:
        """Return the raw reply for a payload or raise :class:`ServiceError`."""


class DryRunCompletionClient(CompletionClient):
    """A client that simulates replies without any network traffic."""

    name = "dry-run"

    async def complete(
        self,
        payload: Dict[str, Any],
        schema: Dict[str, Any],
    ) -> CompletionReply:
        user_payload = payload["user_payload"]
        language = user_payload["target_language"]
        reply: Dict[str, Any] = {}
        for item in user_payload["entries"]:
            if "plural_source" in item:
                reply[item["id"]] = [
                    f"[DRY:{language}] {item['source']}",
                    f"[DRY:{language}] {item['plural_source']}",
                ]
            else:
                reply[item["id"]] = f"[DRY:{language}] {item['source']}"
        return reply


class OpenAICompletionClient(CompletionClient):
    """Client for OpenAI-compatible chat completion endpoints."""

    name = "openai"
    DEFAULT_TIMEOUT = 120.0

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        api_base: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        debug: bool = False,
    ) -> None:
        self.model = model
        self.debug = debug
        # Retries are owned by the retry policy, not the SDK.
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=timeout,
            max_retries=0,
        )

    async def complete(
        self,
        payload: Dict[str, Any],
        schema: Dict[str, Any],
    ) -> CompletionReply:
        messages = to_messages(payload)
        self._log_debug("provider.request.messages", messages)
        self._log_debug("provider.request.schema", schema)

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "translations",
                        "schema": schema,
                        "strict": True,
                    },
                },
            )
        except openai.AuthenticationError as exc:
            raise ServiceError(ServiceErrorKind.AUTHENTICATION, str(exc)) from exc
        except openai.PermissionDeniedError as exc:
            raise ServiceError(ServiceErrorKind.AUTHENTICATION, str(exc)) from exc
        except openai.RateLimitError as exc:
            raise ServiceError(ServiceErrorKind.RATE_LIMIT, str(exc)) from exc
        except openai.APIConnectionError as exc:
            raise ServiceError(ServiceErrorKind.TRANSPORT, str(exc)) from exc
        except openai.APIStatusError as exc:
            if exc.status_code >= 500:
                raise ServiceError(ServiceErrorKind.TRANSPORT, str(exc)) from exc
            raise ServiceError(ServiceErrorKind.MALFORMED_RESPONSE, str(exc)) from exc

        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        content: str | None = None
        for choice in response.choices or []:
            message = getattr(choice, "message", None)
            if message is not None and message.content:
                content = message.content
                break
        if content is None:
            raise ServiceError(
                ServiceErrorKind.MALFORMED_RESPONSE,
                "Completion service returned an empty response.",
            )
        return content

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        else:
            message = str(payload)
        logger.debug("%s:\n%s", label, message)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK objects into JSON-friendly data."""

        dump = getattr(response, "model_dump", None)
        if dump is not None:
            return dump()
        return str(response)


def build_client(
    config: AppConfig,
    *,
    dry_run: bool,
    debug: bool = False,
) -> CompletionClient:
    """Factory choosing the simulated or the real client."""

    if dry_run:
        return DryRunCompletionClient()
    if not config.llm.api_key:
        raise ConfigError(
            "No API key configured. Set llm.api_key, POLLM_API_KEY or OPENAI_API_KEY."
        )
    return OpenAICompletionClient(
        api_key=config.llm.api_key,
        model=config.llm.model,
        api_base=config.llm.api_base,
        timeout=config.llm.timeout,
        debug=debug,
    )
