from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from jobsweep.core.config import ConfigurationError, Settings

SourceKind = Literal["greenhouse", "lever", "workable", "bamboohr", "career_page", "tes"]

SLUG_KINDS = {"greenhouse", "lever", "workable", "bamboohr"}
URL_KINDS = {"career_page", "tes"}


class SourceConfig(BaseModel):
    """One crawlable source: an ATS board, a school career page or a job-board search."""

    key: str = Field(pattern=r"^[a-z0-9][a-z0-9._-]*$", max_length=120)
    kind: SourceKind
    slug: str | None = None
    url: str | None = None
    base_url: str | None = None
    school_name: str | None = None
    city: str = ""
    country: str = ""
    country_code: str = ""
    max_pages: int | None = Field(default=None, ge=1, le=100)
    enabled: bool = True

    @model_validator(mode="after")
    def _check_target(self) -> SourceConfig:
        if self.kind in SLUG_KINDS and not self.slug:
            raise ValueError(f"{self.kind} source {self.key!r} requires slug")
        if self.kind in URL_KINDS and not self.url:
            raise ValueError(f"{self.kind} source {self.key!r} requires url")
        if self.kind != "tes" and not self.school_name:
            raise ValueError(f"{self.kind} source {self.key!r} requires school_name")
        return self


def parse_source_configs(raw: str | None) -> list[SourceConfig]:
    if not raw or not raw.strip():
        return []
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"sources must be valid JSON: {exc}") from exc
    if not isinstance(decoded, list):
        raise ConfigurationError("sources must be a JSON list")

    configs: list[SourceConfig] = []
    seen: set[str] = set()
    for index, item in enumerate(decoded):
        try:
            config = SourceConfig.model_validate(item)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid source at index {index}: {exc}") from exc
        if config.key in seen:
            raise ConfigurationError(f"duplicate source key: {config.key}")
        seen.add(config.key)
        configs.append(config)
    return configs


def load_source_configs(settings: Settings) -> list[SourceConfig]:
    if settings.sources_json:
        return parse_source_configs(settings.sources_json)
    if settings.sources_file:
        path = Path(settings.sources_file)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"cannot read sources file {path}: {exc}") from exc
        return parse_source_configs(raw)
    return []
