from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ALLOWED_MIME = (
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _get_env_list(name: str, default: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    app_env: str
    api_key: str | None
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    ai_provider: str
    ai_model: str
    openai_api_key: str | None
    openai_base_url: str | None
    gemini_api_key: str | None
    ai_max_output_tokens: int
    ai_max_retries: int
    ai_max_backoff_ms: int
    ai_timeout_s: float
    ai_cooldown_seconds: int
    ai_cache_ttl_seconds: int
    analysis_deadline_ms: int
    max_file_mb: float
    allowed_mime: tuple[str, ...]
    analysis_rate_limit: int
    analysis_rate_window_ms: int
    analysis_db_path: str
    cloudinary_cloud_name: str | None
    cloudinary_api_key: str | None
    cloudinary_api_secret: str | None
    cloudinary_signed_url_base: str | None
    blob_timeout_s: float

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def max_file_bytes(self) -> int:
        return int(self.max_file_mb * 1024 * 1024)


def load_settings() -> Settings:
    provider = (_get_env("AI_PROVIDER", "openai") or "openai").strip().lower()
    default_model = "gemini-2.5-flash" if provider == "gemini" else "gpt-4o-mini"
    return Settings(
        app_env=(_get_env("APP_ENV", "development") or "development").strip().lower(),
        api_key=_get_env("API_KEY"),
        rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        cors_allowed_origins=_get_env_list(
            "CORS_ALLOWED_ORIGINS",
            ["http://localhost:3000", "http://127.0.0.1:3000"],
        ),
        ai_provider=provider,
        ai_model=(_get_env("AI_MODEL", default_model) or default_model).strip(),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        openai_base_url=_get_env("OPENAI_BASE_URL"),
        gemini_api_key=_get_env("GEMINI_API_KEY"),
        ai_max_output_tokens=_get_env_int("AI_MAX_OUTPUT_TOKENS", 1024),
        ai_max_retries=max(1, _get_env_int("AI_MAX_RETRIES", 3)),
        ai_max_backoff_ms=max(0, _get_env_int("AI_MAX_BACKOFF_MS", 8000)),
        ai_timeout_s=_get_env_float("AI_TIMEOUT_S", 30.0),
        ai_cooldown_seconds=max(0, _get_env_int("AI_COOLDOWN_SECONDS", 60)),
        ai_cache_ttl_seconds=max(0, _get_env_int("AI_CACHE_TTL_SECONDS", 3600)),
        analysis_deadline_ms=max(1, _get_env_int("ANALYSIS_DEADLINE_MS", 7000)),
        max_file_mb=_get_env_float("MAX_FILE_MB", 8.0),
        allowed_mime=_get_env_list("ALLOWED_MIME", DEFAULT_ALLOWED_MIME),
        analysis_rate_limit=max(1, _get_env_int("ANALYSIS_RATE_LIMIT", 10)),
        analysis_rate_window_ms=max(1, _get_env_int("ANALYSIS_RATE_WINDOW_MS", 60_000)),
        analysis_db_path=_get_env("ANALYSIS_DB_PATH", "data/analyses.db") or "data/analyses.db",
        cloudinary_cloud_name=_get_env("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=_get_env("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=_get_env("CLOUDINARY_API_SECRET"),
        cloudinary_signed_url_base=_get_env("CLOUDINARY_SIGNED_URL_BASE"),
        blob_timeout_s=_get_env_float("BLOB_TIMEOUT_S", 10.0),
    )


settings = load_settings()

if settings.ai_provider not in {"openai", "gemini"}:
    raise RuntimeError("AI_PROVIDER must be either 'openai' or 'gemini'.")
