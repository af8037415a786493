"""Application configuration utilities for the metrics backend."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

DEFAULT_DATABASE_URL = "sqlite:///./metrics.db"
DEFAULT_MEDIA_ROOT = "./media"
DEFAULT_MEDIA_BUCKET = "images"
DEFAULT_MEDIA_PUBLIC_BASE_URL = "/media/images/"
DEFAULT_MEDIA_UPLOAD_CONCURRENCY = 10
DEFAULT_MEDIA_DOWNLOAD_TIMEOUT = 15.0
DEFAULT_MEDIA_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_GOOGLE_BOOKS_BASE_URL = "https://www.googleapis.com/books/v1"
DEFAULT_GOOGLE_BOOKS_MAX_ATTEMPTS = 3
DEFAULT_GOOGLE_BOOKS_REQUEST_DELAY_MS = 200
DEFAULT_GOOGLE_BOOKS_TIMEOUT = 10.0
DEFAULT_GOODREADS_BASE_URL = "https://www.goodreads.com"
DEFAULT_GOODREADS_SHELF_SIZE = 18
DEFAULT_DISCOGS_BASE_URL = "https://api.discogs.com"
DEFAULT_DISCOGS_BATCH_CONCURRENCY = 2
DEFAULT_DISCOGS_BATCH_DELAY_MS = 1000
DEFAULT_DISCOGS_USER_AGENT = "MetricsApp/1.0"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 15 * 60
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 100
DEFAULT_CORS_ORIGIN_REGEX = r"https?://([a-z0-9]+[.])*(dev-)?chrisvogt[.]me(:\d+)?$|.*\.netlify\.app$"
DEFAULT_ENV_FILE = ".env"

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying the env file before the real environment."""

    env: dict[str, str] = {}
    source = dict(base_env or os.environ)

    if env_file is None:
        env_file = source.get("METRICS_ENV_FILE") or DEFAULT_ENV_FILE
    path = Path(env_file)
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = default if value is None else _coerce_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _as_float(value: str | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    level: str


@dataclass(slots=True, frozen=True)
class DatabaseConfig:
    url: str


@dataclass(slots=True, frozen=True)
class GoogleBooksConfig:
    api_key: str | None
    base_url: str
    timeout: float
    max_attempts: int
    request_delay_ms: int


@dataclass(slots=True, frozen=True)
class GoodreadsConfig:
    api_key: str | None
    user_id: str | None
    base_url: str
    shelf_size: int


@dataclass(slots=True, frozen=True)
class DiscogsConfig:
    token: str | None
    username: str | None
    base_url: str
    batch_concurrency: int
    batch_delay_ms: int
    user_agent: str

    @property
    def profile_url(self) -> str:
        return f"https://www.discogs.com/user/{self.username}/collection"


@dataclass(slots=True, frozen=True)
class MediaConfig:
    root: str
    bucket: str
    public_base_url: str
    upload_concurrency: int
    download_timeout: float
    max_bytes: int


@dataclass(slots=True, frozen=True)
class GeminiConfig:
    api_key: str | None
    model: str


@dataclass(slots=True, frozen=True)
class RateLimitConfig:
    enabled: bool
    window_seconds: int
    max_requests: int


@dataclass(slots=True, frozen=True)
class CorsConfig:
    allow_origin_regex: str


@dataclass(slots=True, frozen=True)
class AppConfig:
    logging: LoggingConfig
    database: DatabaseConfig
    google_books: GoogleBooksConfig
    goodreads: GoodreadsConfig
    discogs: DiscogsConfig
    media: MediaConfig
    gemini: GeminiConfig
    rate_limit: RateLimitConfig
    cors: CorsConfig


def load_config(runtime_env: Mapping[str, Any] | None = None) -> AppConfig:
    """Build the application configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()

    google_books = GoogleBooksConfig(
        api_key=_env_value(env, "GOOGLE_BOOKS_API_KEY"),
        base_url=_env_value(env, "GOOGLE_BOOKS_BASE_URL") or DEFAULT_GOOGLE_BOOKS_BASE_URL,
        timeout=_as_float(_env_value(env, "GOOGLE_BOOKS_TIMEOUT"), default=DEFAULT_GOOGLE_BOOKS_TIMEOUT),
        max_attempts=_bounded_int(
            _env_value(env, "GOOGLE_BOOKS_MAX_ATTEMPTS"),
            default=DEFAULT_GOOGLE_BOOKS_MAX_ATTEMPTS,
            minimum=1,
        ),
        request_delay_ms=_bounded_int(
            _env_value(env, "GOOGLE_BOOKS_REQUEST_DELAY_MS"),
            default=DEFAULT_GOOGLE_BOOKS_REQUEST_DELAY_MS,
            minimum=0,
        ),
    )

    goodreads = GoodreadsConfig(
        api_key=_env_value(env, "GOODREADS_API_KEY"),
        user_id=_env_value(env, "GOODREADS_USER_ID"),
        base_url=_env_value(env, "GOODREADS_BASE_URL") or DEFAULT_GOODREADS_BASE_URL,
        shelf_size=_bounded_int(
            _env_value(env, "GOODREADS_SHELF_SIZE"),
            default=DEFAULT_GOODREADS_SHELF_SIZE,
            minimum=1,
            maximum=200,
        ),
    )

    discogs = DiscogsConfig(
        token=_env_value(env, "DISCOGS_API_KEY"),
        username=_env_value(env, "DISCOGS_USERNAME"),
        base_url=_env_value(env, "DISCOGS_BASE_URL") or DEFAULT_DISCOGS_BASE_URL,
        batch_concurrency=_bounded_int(
            _env_value(env, "DISCOGS_BATCH_CONCURRENCY"),
            default=DEFAULT_DISCOGS_BATCH_CONCURRENCY,
            minimum=1,
        ),
        batch_delay_ms=_bounded_int(
            _env_value(env, "DISCOGS_BATCH_DELAY_MS"),
            default=DEFAULT_DISCOGS_BATCH_DELAY_MS,
            minimum=0,
        ),
        user_agent=_env_value(env, "DISCOGS_USER_AGENT") or DEFAULT_DISCOGS_USER_AGENT,
    )

    public_base_url = _env_value(env, "MEDIA_PUBLIC_BASE_URL") or DEFAULT_MEDIA_PUBLIC_BASE_URL
    if not public_base_url.endswith("/"):
        public_base_url = f"{public_base_url}/"
    media = MediaConfig(
        root=_env_value(env, "MEDIA_ROOT") or DEFAULT_MEDIA_ROOT,
        bucket=_env_value(env, "MEDIA_BUCKET") or DEFAULT_MEDIA_BUCKET,
        public_base_url=public_base_url,
        upload_concurrency=_bounded_int(
            _env_value(env, "MEDIA_UPLOAD_CONCURRENCY"),
            default=DEFAULT_MEDIA_UPLOAD_CONCURRENCY,
            minimum=1,
        ),
        download_timeout=_as_float(
            _env_value(env, "MEDIA_DOWNLOAD_TIMEOUT"), default=DEFAULT_MEDIA_DOWNLOAD_TIMEOUT
        ),
        max_bytes=_bounded_int(
            _env_value(env, "MEDIA_MAX_BYTES"), default=DEFAULT_MEDIA_MAX_BYTES, minimum=1
        ),
    )

    rate_limit = RateLimitConfig(
        enabled=_as_bool(_env_value(env, "RATE_LIMIT_ENABLED"), default=True),
        window_seconds=_bounded_int(
            _env_value(env, "RATE_LIMIT_WINDOW_SECONDS"),
            default=DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
            minimum=1,
        ),
        max_requests=_bounded_int(
            _env_value(env, "RATE_LIMIT_MAX_REQUESTS"),
            default=DEFAULT_RATE_LIMIT_MAX_REQUESTS,
            minimum=1,
        ),
    )

    return AppConfig(
        logging=LoggingConfig(level=_env_value(env, "LOG_LEVEL") or "INFO"),
        database=DatabaseConfig(url=_env_value(env, "DATABASE_URL") or DEFAULT_DATABASE_URL),
        google_books=google_books,
        goodreads=goodreads,
        discogs=discogs,
        media=media,
        gemini=GeminiConfig(
            api_key=_env_value(env, "GEMINI_API_KEY"),
            model=_env_value(env, "GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        ),
        rate_limit=rate_limit,
        cors=CorsConfig(
            allow_origin_regex=_env_value(env, "CORS_ALLOW_ORIGIN_REGEX")
            or DEFAULT_CORS_ORIGIN_REGEX
        ),
    )


__all__ = [
    "AppConfig",
    "CorsConfig",
    "DatabaseConfig",
    "DiscogsConfig",
    "GeminiConfig",
    "GoodreadsConfig",
    "GoogleBooksConfig",
    "LoggingConfig",
    "MediaConfig",
    "RateLimitConfig",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
