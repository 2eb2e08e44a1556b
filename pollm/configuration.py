"""TOML configuration loader for pollm."""

from __future__ import annotations

import os
import pathlib
import tomllib
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .prompts import DEFAULT_INSTRUCTION_TEMPLATE
from .structures import ProjectContext

API_KEY_VARIABLES = ("POLLM_API_KEY", "OPENAI_API_KEY")


class LlmSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_base: Optional[str] = None
    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = "gpt-4o-mini"
    custom_prompt: Optional[str] = None
    system_prompt: str = DEFAULT_INSTRUCTION_TEMPLATE
    timeout: float = Field(default=120.0, gt=0)


class TranslationSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    target_languages: List[str] = Field(min_length=1)
    input_pattern: str
    output_pattern: str
    batch_size: int = Field(gt=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff: List[float] = Field(default_factory=lambda: [1.0, 4.0, 9.0])

    @field_validator("retry_backoff")
    @classmethod
    def _non_negative_backoff(cls, value: List[float]) -> List[float]:
        if any(item < 0 for item in value):
            raise ValueError("backoff values must not be negative")
        return value

    @model_validator(mode="after")
    def _distinct_outputs(self) -> "TranslationSettings":
        if len(self.target_languages) > 1 and "{lang}" not in self.output_pattern:
            raise ValueError(
                "output_pattern must contain {lang} when several target languages are configured"
            )
        return self


class ProjectSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    context: str = ""
    base_path: str = "."
    skip_translated: bool = True


class AppConfig(BaseModel):
    """Schema describing all supported configuration options."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    llm: LlmSettings = Field(default_factory=LlmSettings)
    translation: TranslationSettings
    project: ProjectSettings = Field(default_factory=ProjectSettings)
    config_dir: pathlib.Path = pathlib.Path(".")

    @property
    def base_dir(self) -> pathlib.Path:
        return self.config_dir / self.project.base_path

    def project_context(self) -> ProjectContext:
        return ProjectContext(
            context=self.project.context,
            instruction_template=self.llm.system_prompt,
            batch_size=self.translation.batch_size,
            skip_translated=self.project.skip_translated,
            custom_prompt=self.llm.custom_prompt,
        )


def _resolve_api_key(
    config_dir: pathlib.Path,
    environ: Mapping[str, str],
) -> str | None:
    """Look up the API key in a .env file next to the config, then the environment."""

    values: Dict[str, str] = {}
    dotenv_path = config_dir / ".env"
    if dotenv_path.exists():
        values.update({k: v for k, v in dotenv_values(dotenv_path).items() if v is not None})
    values.update(environ)

    for name in API_KEY_VARIABLES:
        if values.get(name):
            return values[name]
    return None


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        location = ".".join(str(part) for part in entry.get("loc", ()) if part not in {None, ""})
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def load_config(
    path: pathlib.Path,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Read, validate and return the configuration stored at ``path``."""

    if not path.is_file():
        raise ConfigError(f"Configuration file '{path}' not found.")

    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{path}' is not valid TOML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Configuration file '{path}' could not be read: {exc}") from exc

    config_dir = path.resolve().parent
    llm = data.setdefault("llm", {})
    if isinstance(llm, dict) and not llm.get("api_key"):
        api_key = _resolve_api_key(config_dir, os.environ if environ is None else environ)
        if api_key:
            llm["api_key"] = api_key
    data["config_dir"] = config_dir

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_errors(exc.errors())) from exc

    if not config.base_dir.is_dir():
        raise ConfigError(f"Base path '{config.base_dir}' does not exist or is not a directory.")
    return config
