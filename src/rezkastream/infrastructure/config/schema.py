"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from rezkastream.infrastructure.http.fetcher import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_USER_AGENT,
)
from rezkastream.infrastructure.rezka.decoder import (
    OBFUSCATION_CHARS,
    TRASH_LOOKAHEAD,
    TRASH_MARKER,
    TRASH_RUN_LENGTH,
)

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_path(value: Any) -> Path:
    """Normalize a path-like value without touching the filesystem."""
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class SiteConfig(BaseModel):
    """Streaming site the engine talks to."""

    base_url: str = Field(
        default="https://rezka.ag",
        description="Site origin; AJAX endpoints are resolved against it.",
    )
    referer: Optional[str] = Field(
        default=None,
        description="Referer header for AJAX calls. Defaults to base_url.",
    )

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an absolute http(s) URL")
        return v.rstrip("/")

    @property
    def effective_referer(self) -> str:
        return self.referer or f"{self.base_url}/"


class HttpConfig(BaseModel):
    timeout_seconds: float = Field(default=30.0, description="Per-request timeout.")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    accept_language: str = Field(default=DEFAULT_ACCEPT_LANGUAGE)
    rate_limit_rps: float = Field(
        default=2.0,
        description="Requests per second per host. 0 = unlimited.",
    )
    rate_limit_burst: int = Field(default=5, description="Token bucket size per host.")
    max_retries_429: int = Field(
        default=2,
        description="Transport-level retries on HTTP 429.",
    )

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @field_validator("rate_limit_rps")
    @classmethod
    def _validate_rps(cls, v: float) -> float:
        if v < 0:
            raise ValueError("rate_limit_rps must be >= 0")
        return v

    @field_validator("rate_limit_burst")
    @classmethod
    def _validate_burst(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit_burst must be >= 1")
        return v

    @field_validator("max_retries_429")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries_429 must be >= 0")
        return v


class ResolverConfig(BaseModel):
    """Retry policy of the stream resolution controller."""

    max_attempts: int = Field(
        default=3,
        description="Backend probes per resolve call.",
    )
    retry_delay_seconds: float = Field(
        default=0.8,
        description="Pause between probes. 0 = no pause.",
    )
    direct_query_enabled: bool = Field(
        default=True,
        description="Try the AJAX endpoint before the slug-built page.",
    )

    @field_validator("max_attempts")
    @classmethod
    def _validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("retry_delay_seconds")
    @classmethod
    def _validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_delay_seconds must be >= 0")
        return v


class DecoderConfig(BaseModel):
    """Obfuscation constants of the stream payload decoder."""

    trash_marker: str = Field(default=TRASH_MARKER, min_length=1)
    trash_lookahead: int = Field(default=TRASH_LOOKAHEAD, ge=1)
    trash_run_length: int = Field(default=TRASH_RUN_LENGTH, ge=1)
    obfuscation_chars: str = Field(default=OBFUSCATION_CHARS, min_length=1)


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (site/http/resolver/decoder/logging/cache).
    - Environment variables are handled by EnvOverrides(BaseSettings) to keep
      precedence explicit (defaults < YAML < ENV < overrides) in load.py.
    """

    app_name: str = Field(default="rezkastream", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    site: SiteConfig = Field(default_factory=SiteConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    # Cache (YAML section: cache.*)
    cache_dir: Path = Field(
        default=Path("./.cache/rezkastream"),
        validation_alias=AliasChoices(
            "cache_dir",
            AliasPath("cache", "dir"),
        ),
        description="Directory of the diskcache store holding watch history.",
    )

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path:
        return _normalize_path(v)

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """Dump configuration in the sectioned shape used by config.yaml."""
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "site": self.site.model_dump(),
            "http": self.http.model_dump(),
            "resolver": self.resolver.model_dump(),
            "decoder": self.decoder.model_dump(),
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": {"dir": str(self.cache_dir)},
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py reads REZKASTREAM_* variables through this model, keeps only
    the values that were set, and merges them over defaults and YAML.

    Supported env var examples (flat, explicit):
    - REZKASTREAM_BASE_URL
    - REZKASTREAM_HTTP_TIMEOUT_SECONDS
    - REZKASTREAM_MAX_ATTEMPTS
    - REZKASTREAM_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="REZKASTREAM_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    base_url: Optional[str] = None
    referer: Optional[str] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None
    http_accept_language: Optional[str] = None
    rate_limit_rps: Optional[float] = None
    rate_limit_burst: Optional[int] = None
    max_retries_429: Optional[int] = None

    max_attempts: Optional[int] = None
    retry_delay_seconds: Optional[float] = None
    direct_query_enabled: Optional[bool] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_dir: Optional[Path] = None

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """Return only values that were actually provided (non-None)."""
        return self.model_dump(exclude_none=True)
