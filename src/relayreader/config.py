"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (RELAYREADER__FETCHER__MAX_RETRIES=5)
  2. relayreader.yaml       (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional — all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def _find_config_file() -> str | None:
    """Return the path of the first relayreader.yaml found, or None."""
    candidates = [
        Path("relayreader.yaml"),
        Path(platformdirs.user_config_dir("relayreader")) / "relayreader.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "0.0.0.0"
    port: int = 8080
    auth_enabled: bool = False
    auth_key: str = ""
    # Browser origins allowed to reach the HTTP endpoint; requests without an
    # Origin header (CLI clients) are always allowed.
    allowed_origin_hosts: list[str] = ["localhost", "127.0.0.1"]


class RedditSettings(BaseModel):
    base_url: str = "https://www.reddit.com"
    default_limit: int = Field(default=25, ge=1, le=100)
    more_children_chunk_size: int = Field(default=20, ge=1)
    subreddit_search_limit: int = Field(default=5, ge=1, le=100)


class RelaySettings(BaseModel):
    """One public passthrough relay.

    ``template`` may reference ``{url}`` (raw target) or ``{encoded_url}``
    (percent-encoded target).
    """

    name: str
    template: str
    supports_body_forwarding: bool = False

    @field_validator("template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        if "{url}" not in v and "{encoded_url}" not in v:
            raise ValueError(f"Relay template must contain {{url}} or {{encoded_url}}: {v!r}")
        return v


DEFAULT_RELAYS: list[RelaySettings] = [
    RelaySettings(
        name="codetabs",
        template="https://api.codetabs.com/v1/proxy?quest={encoded_url}",
    ),
    RelaySettings(
        name="corsproxy",
        template="https://corsproxy.io/?{encoded_url}",
        supports_body_forwarding=True,
    ),
    RelaySettings(
        name="allorigins",
        template="https://api.allorigins.win/raw?url={encoded_url}",
    ),
    RelaySettings(
        name="thingproxy",
        template="https://thingproxy.freeboard.io/fetch/{url}",
    ),
]


class FetcherSettings(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_jitter_seconds: float = Field(default=0.5, ge=0)
    max_concurrent_requests: int = Field(default=3, ge=1)
    # Let concurrent GETs for the same uncached URL share one network operation.
    coalesce_in_flight: bool = False
    user_agent: str = "web:relayreader:v1.0.0"

    @model_validator(mode="after")
    def validate_backoff(self) -> FetcherSettings:
        # First retry waits base * 2; jitter must stay below that gap for the
        # delays to strictly increase. All-zero disables backoff entirely.
        if self.backoff_base_seconds == 0 and self.backoff_jitter_seconds == 0:
            return self
        if self.backoff_jitter_seconds >= 2 * self.backoff_base_seconds:
            raise ValueError(
                "backoff_jitter_seconds must be less than 2 * backoff_base_seconds "
                f"(got jitter={self.backoff_jitter_seconds}, base={self.backoff_base_seconds})"
            )
        return self


class CacheSettings(BaseModel):
    max_entries: int = Field(default=200, ge=1)
    metadata_ttl_seconds: int = 24 * 60 * 60
    comments_ttl_seconds: int = 10 * 60
    search_ttl_seconds: int = 10 * 60
    listing_ttl_seconds: int = 5 * 60
    default_ttl_seconds: int = 2 * 60


class ClassifierSettings(BaseModel):
    endpoint: str = "https://openrouter.ai/api/v1/chat/completions"
    api_key: SecretStr | None = None
    model: str = "meta-llama/llama-3-8b-instruct:free"
    min_zen_score: int = Field(default=50, ge=0, le=100)
    snippet_length: int = Field(default=300, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    custom_instructions: str = ""


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: RELAYREADER__SERVER__PORT=9090
        env_prefix="RELAYREADER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    reddit: RedditSettings = RedditSettings()
    relays: list[RelaySettings] = Field(default_factory=lambda: list(DEFAULT_RELAYS))
    fetcher: FetcherSettings = FetcherSettings()
    cache: CacheSettings = CacheSettings()
    classifier: ClassifierSettings = ClassifierSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
