from personal_metrics.config import (
    DEFAULT_DISCOGS_BATCH_DELAY_MS,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_GOOGLE_BOOKS_REQUEST_DELAY_MS,
    load_config,
)


def test_defaults_apply_when_environment_is_empty() -> None:
    config = load_config({})

    assert config.google_books.max_attempts == 3
    assert config.google_books.request_delay_ms == DEFAULT_GOOGLE_BOOKS_REQUEST_DELAY_MS
    assert config.discogs.batch_concurrency == 2
    assert config.discogs.batch_delay_ms == DEFAULT_DISCOGS_BATCH_DELAY_MS
    assert config.media.bucket == "images"
    assert config.media.upload_concurrency == 10
    assert config.gemini.model == DEFAULT_GEMINI_MODEL
    assert config.gemini.api_key is None
    assert config.rate_limit.enabled is True


def test_environment_values_override_defaults() -> None:
    config = load_config(
        {
            "GOOGLE_BOOKS_MAX_ATTEMPTS": "5",
            "GOODREADS_SHELF_SIZE": "500",
            "DISCOGS_USERNAME": "collector",
            "RATE_LIMIT_ENABLED": "false",
            "MEDIA_UPLOAD_CONCURRENCY": "not-a-number",
        }
    )

    assert config.google_books.max_attempts == 5
    assert config.goodreads.shelf_size == 200
    assert config.discogs.profile_url == "https://www.discogs.com/user/collector/collection"
    assert config.rate_limit.enabled is False
    assert config.media.upload_concurrency == 10


def test_runtime_override_is_used_by_default() -> None:
    config = load_config()

    assert config.goodreads.user_id == "12345"
    assert config.media.public_base_url == "https://cdn.example.com/"


def test_google_books_section_has_no_lookup_concurrency_setting() -> None:
    config = load_config({"GOOGLE_BOOKS_REQUEST_DELAY_MS": "50"})

    assert config.google_books.request_delay_ms == 50
    assert not hasattr(config.google_books, "enrichment_concurrency")
