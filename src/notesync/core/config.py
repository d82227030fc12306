"""Configuration models and loaders for :mod:`notesync`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from pathlib import Path
from typing import Any, Mapping

import tomllib
import tomlkit
from pydantic import BaseModel, Field, field_validator, model_validator

from notesync.core.paths import DEFAULT_INDEX_NAME
from notesync.resources import get_resource


class DatabaseSettings(BaseModel):
    """Location of the externally owned notes database."""

    path: Path | None = Field(
        default=None,
        description=(
            "Path to the notes SQLite database; unset falls back to the "
            "Bear application container."
        ),
    )

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_blank(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SyncSettings(BaseModel):
    """Timings and toggles for the change-detection loop."""

    debounce_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Quiet period that coalesces bursts of change signals.",
    )
    poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Interval of the always-on database version poll.",
    )
    watch_enabled: bool = Field(
        default=True,
        description="Whether to watch the database file for modifications.",
    )
    auto_index: bool = Field(
        default=True,
        description="Rebuild the index at startup when it is missing.",
    )

    model_config = {
        "frozen": True,
    }


class EmbeddingSettings(BaseModel):
    """Embedding provider selection."""

    provider: str = Field(
        default="local",
        description="Registered embedding provider key (local or openai).",
    )
    model: str = Field(
        default="all-MiniLM-L6-v2",
        description="Model name passed to the provider.",
    )
    dim: int = Field(
        default=384,
        ge=1,
        description="Expected embedding dimension for new indexes.",
    )
    timeout: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional request timeout in seconds for remote providers.",
    )

    model_config = {
        "frozen": True,
        "str_strip_whitespace": True,
    }

    @field_validator("provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("embeddings.provider cannot be blank")
        return normalized


class IndexSettings(BaseModel):
    """Vector index naming and distance metric."""

    name: str = Field(
        default=DEFAULT_INDEX_NAME,
        description="Basename used for the index and mapping artifacts.",
    )
    metric: str = Field(
        default="l2",
        description="Distance metric for new indexes (l2, ip or cosine).",
    )

    model_config = {
        "frozen": True,
        "str_strip_whitespace": True,
    }

    @field_validator("metric")
    @classmethod
    def _normalize_metric(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"l2", "ip", "cosine"}:
            raise ValueError(f"Unsupported index metric: {value!r}")
        return normalized


class AppConfig(BaseModel):
    """Root configuration for the :mod:`notesync` application."""

    workspace: Path = Field(
        default_factory=lambda: Path("~/.notesync").expanduser(),
        description="Absolute path to the workspace root.",
    )
    log_level: str = Field(
        default="INFO",
        description="Default logging level for the application runtime.",
    )
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    embeddings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @model_validator(mode="after")
    def _post_process(self) -> "AppConfig":
        """Normalize fields after validation."""

        object.__setattr__(self, "log_level", self.log_level.upper())
        object.__setattr__(self, "workspace", self.workspace.expanduser())
        return self


DEFAULTS_RESOURCE_NAME = "notesync.defaults.toml"


def read_packaged_defaults_text() -> str:
    """Return the raw packaged defaults TOML content."""

    resource = get_resource(DEFAULTS_RESOURCE_NAME)
    return resource.read_text(encoding="utf-8")


def load_packaged_defaults() -> dict[str, Any]:
    """Load the packaged defaults as a plain dictionary.

    Example:
        >>> defaults = load_packaged_defaults()
        >>> defaults["log_level"]
        'INFO'
    """

    data: dict[str, Any] = tomllib.loads(read_packaged_defaults_text())
    return data


def read_user_config(path: Path) -> dict[str, Any] | None:
    """Parse ``notesync.toml`` at ``path`` when it exists."""

    if not path.exists():
        return None
    return tomllib.loads(path.read_text(encoding="utf-8"))


def _deep_merge(
    base: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Recursively merge ``overlay`` into ``base`` returning a new dict."""

    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MappingABC)
            and isinstance(value, MappingABC)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``NOTESYNC_*`` environment variables into config layers."""

    overrides: dict[str, Any] = {}
    workspace = environ.get("NOTESYNC_WORKSPACE")
    if workspace:
        overrides["workspace"] = workspace
    log_level = environ.get("NOTESYNC_LOG_LEVEL")
    if log_level:
        overrides["log_level"] = log_level
    database = environ.get("NOTESYNC_DATABASE")
    if database:
        overrides["database"] = {"path": database}
    return overrides


def load_config(
    *,
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
    env_config: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load configuration according to the precedence stack.

    Args:
        defaults: Packaged defaults shipped with the application.
        user_config: Parsed user ``notesync.toml`` content.
        env_config: Settings derived from environment variables.
        cli_overrides: Settings supplied via CLI flags.

    Returns:
        A validated :class:`AppConfig` instance.
    """

    stack = dict(defaults)
    for layer in (user_config, env_config, cli_overrides):
        if layer:
            stack = _deep_merge(stack, layer)
    return AppConfig(**stack)


def render_user_config(
    config: AppConfig,
    *,
    include_defaults: bool = True,
) -> str:
    """Render a ``notesync.toml`` template for users to customize."""

    document = tomlkit.document()

    if include_defaults:
        document.add(tomlkit.comment("Generated by notesync init"))
        document.add(
            tomlkit.comment(
                "Precedence: CLI flags > env vars > notesync.toml > defaults"
            )
        )
        document.add(tomlkit.comment("Environment overrides:"))
        document.add(tomlkit.comment("  NOTESYNC_WORKSPACE=/path/to/workspace"))
        document.add(tomlkit.comment("  NOTESYNC_LOG_LEVEL=info"))
        document.add(tomlkit.comment("  NOTESYNC_DATABASE=/path/to/database.sqlite"))
        document.add(tomlkit.nl())

    document["workspace"] = str(config.workspace)
    document["log_level"] = config.log_level

    database_table = tomlkit.table()
    if config.database.path is not None:
        database_table["path"] = str(config.database.path)
    elif include_defaults:
        database_table.add(
            tomlkit.comment('path = "" (unset uses the Bear database)')
        )
    document["database"] = database_table

    sync_table = tomlkit.table()
    sync_table["debounce_seconds"] = config.sync.debounce_seconds
    sync_table["poll_interval_seconds"] = config.sync.poll_interval_seconds
    sync_table["watch_enabled"] = config.sync.watch_enabled
    sync_table["auto_index"] = config.sync.auto_index
    document["sync"] = sync_table

    embeddings_table = tomlkit.table()
    embeddings_table["provider"] = config.embeddings.provider
    embeddings_table["model"] = config.embeddings.model
    embeddings_table["dim"] = config.embeddings.dim
    if config.embeddings.timeout is not None:
        embeddings_table["timeout"] = config.embeddings.timeout
    document["embeddings"] = embeddings_table

    index_table = tomlkit.table()
    index_table["name"] = config.index.name
    index_table["metric"] = config.index.metric
    document["index"] = index_table

    return tomlkit.dumps(document)


__all__ = [
    "AppConfig",
    "DatabaseSettings",
    "EmbeddingSettings",
    "IndexSettings",
    "SyncSettings",
    "DEFAULTS_RESOURCE_NAME",
    "env_overrides",
    "load_config",
    "load_packaged_defaults",
    "read_packaged_defaults_text",
    "read_user_config",
    "render_user_config",
]
