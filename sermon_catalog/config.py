from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".sermon-catalog"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("catalog.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "scheduler_enabled",
    "reset_moderation_on_reingest",
    "telemetry_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{SERMON_CATALOG_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `SERMON_CATALOG_*` environment variable (or the
    `.env` file). Credential secrets referenced by the subcategory directory are
    not settings; they are looked up by name at ingestion time.
    """

    model_config = SettingsConfigDict(
        env_prefix="SERMON_CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the catalog database and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("catalog.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('catalog.db'))}",
    )
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (file logs are always DEBUG).",
    )

    # Scheduler.
    scheduler_enabled: bool = Field(
        default=True,
        validation_alias="SERMON_CATALOG_ENABLE_SCHEDULER",
        description="Run the background scheduler (reconciliation, optional ingestion).",
    )
    reconciliation_interval_seconds: int = Field(
        default=21_600,
        description="Interval between scheduled statistics reconciliation runs.",
    )
    ingestion_interval_seconds: int = Field(
        default=0,
        description="Interval between scheduled full ingestion sweeps; 0 disables them.",
    )

    # Credentials.
    credentials_env_file: Path = Field(
        default=Path(".env"),
        description="Dotenv file consulted (after the process environment) for API key values.",
    )
    default_api_key_name: str = Field(
        default="YOUTUBE_API_KEY",
        description="Credential name used for ad-hoc queries and reconciliation.",
    )

    # Ingestion behaviour.
    search_query_suffix: str = Field(
        default="Christian Sermons",
        description="Text appended to a subcategory label to build its search query.",
    )
    search_page_size: int = Field(
        default=50,
        description="search.list maxResults per page (capped at 50 by the API).",
    )
    search_pages_per_strategy: int = Field(
        default=1,
        description="Search result pages followed (via nextPageToken) per sort strategy.",
    )
    min_duration_seconds: int = Field(
        default=60,
        description="Videos shorter than this are dropped before they are stored.",
    )
    reset_moderation_on_reingest: bool = Field(
        default=False,
        description="Reset moderation status to 'Needs Review' when a stored video is re-ingested.",
    )
    youtube_http_timeout_seconds: float = Field(
        default=20.0,
        description="Socket timeout for YouTube Data API calls.",
    )
    youtube_daily_quota_limit: int = Field(
        default=10_000,
        description="Expected daily YouTube Data API quota per credential, used for warnings.",
    )
    youtube_quota_warning_percent: float = Field(
        default=0.8,
        description="Warn when estimated daily usage exceeds this fraction of quota limit.",
    )

    # Listing.
    public_page_size: int = Field(default=6, description="Default page size for public listings.")
    admin_page_size: int = Field(default=10, description="Default page size for admin listings.")
    max_page_size: int = Field(default=100, description="Upper bound for any requested page size.")

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Emit structured telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry sink: `log` writes to the telemetry log file, `none` drops events.",
    )

    @field_validator("search_page_size", mode="after")
    @classmethod
    def _clamp_search_page_size(cls, value: int) -> int:
        return max(1, min(50, value))

    @field_validator(
        "reconciliation_interval_seconds",
        "search_pages_per_strategy",
        "public_page_size",
        "admin_page_size",
        "max_page_size",
        mode="after",
    )
    @classmethod
    def _require_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("ingestion_interval_seconds", "min_duration_seconds", mode="after")
    @classmethod
    def _require_non_negative(cls, value: int, info: ValidationInfo) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("default_api_key_name", "search_query_suffix", mode="before")
    @classmethod
    def _normalize_required_text(cls, value: Any, info: ValidationInfo) -> str:
        if not isinstance(value, str):
            raise ValueError(f"{info.field_name} must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, "credentials_env_file", mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
