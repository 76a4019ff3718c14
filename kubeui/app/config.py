from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KUBECONFIG_PATH = Path("~/.kube/config")
DEFAULT_LOG_DIR = Path(".kubeui/logs")
# Only this exact value turns verification on; see `AppSettings.verify_tls`.
TLS_VERIFY_ENABLED_VALUE = "false"
_DIRECTORY_FIELDS: tuple[str, ...] = ("web_ui_dist_dir", "log_dir")
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return {1: True, 0: False}.get(value, default)
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def kubeconfig_location(value: Any) -> Path:
    """Pick the kubeconfig file named by a `KUBECONFIG`-style value.

    An unset or empty value means `~/.kube/config`. A path list contributes
    only its first non-empty entry; files are not merged.
    """
    if isinstance(value, Path):
        chosen = value
    else:
        raw = value if isinstance(value, str) else ""
        entries = [entry.strip() for entry in raw.split(os.pathsep) if entry.strip()]
        chosen = Path(entries[0]) if entries else DEFAULT_KUBECONFIG_PATH
    return chosen.expanduser().resolve()


class AppSettings(BaseSettings):
    """
    Runtime configuration for the resource proxy.

    Options come from `KUBEUI_*` environment variables, except the two
    variables shared with other Kubernetes tooling (`KUBECONFIG`,
    `SKIP_TLS_VERIFY`), which are read under their conventional names.
    Paths are resolved against the working directory at load time.
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBEUI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
    )

    # Cluster access.
    kubeconfig_path: Path = Field(
        default=DEFAULT_KUBECONFIG_PATH,
        validation_alias=AliasChoices("KUBECONFIG", "KUBEUI_KUBECONFIG"),
        description="Kubeconfig file used to build the calling context at startup.",
    )
    skip_tls_verify: str | None = Field(
        default=None,
        validation_alias="SKIP_TLS_VERIFY",
        description=(
            "Raw TLS toggle. Verification is enabled only when this is exactly `false`; "
            "any other value, or leaving it unset, disables verification."
        ),
    )
    upstream_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each call against the API server.",
    )

    # HTTP server.
    host: str = Field(default="0.0.0.0", description="Bind address for `kubeui serve`.")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port for `kubeui serve`.")
    web_ui_dist_dir: Path = Field(
        default=Path("dist"),
        description="Directory holding the built single-page application bundle.",
    )

    # Logging and telemetry.
    log_dir: Path = Field(
        default=DEFAULT_LOG_DIR,
        description="Directory for `kubeui.log` and `kubeui-telemetry.log`.",
    )
    log_level: str = Field(default="INFO", description="Console log level (stdout).")
    telemetry_enabled: bool = Field(
        default=True,
        description="Record request and upstream call telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="`log` writes telemetry events to the telemetry log; `none` drops them.",
    )

    @property
    def verify_tls(self) -> bool:
        return self.skip_tls_verify == TLS_VERIFY_ENABLED_VALUE

    @field_validator("kubeconfig_path", mode="before")
    @classmethod
    def _normalize_kubeconfig_path(cls, value: Any) -> Path:
        return kubeconfig_location(value)

    @field_validator(*_DIRECTORY_FIELDS, mode="before")
    @classmethod
    def _normalize_directories(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        normalized = value.strip().lower() if isinstance(value, str) else value
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("KUBEUI_TELEMETRY_SINK must be set to: none, log.")

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def load_settings() -> AppSettings:
    return AppSettings()
