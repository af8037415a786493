import asyncio
import inspect
from collections.abc import Iterator
from pathlib import Path

import pytest

from personal_metrics.config import override_runtime_env
from personal_metrics.db import reset_engine_for_tests


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


@pytest.fixture(autouse=True)
def _test_environment(tmp_path: Path) -> Iterator[None]:
    data_dir = tmp_path / "data"
    media_dir = tmp_path / "media"
    for directory in (data_dir, media_dir):
        directory.mkdir(parents=True, exist_ok=True)

    override_runtime_env(
        {
            "METRICS_ENV_FILE": str(tmp_path / "missing.env"),
            "DATABASE_URL": f"sqlite:///{data_dir / 'metrics.db'}",
            "MEDIA_ROOT": str(media_dir),
            "MEDIA_BUCKET": "images",
            "MEDIA_PUBLIC_BASE_URL": "https://cdn.example.com/",
            "GOOGLE_BOOKS_API_KEY": "books-key",
            "GOOGLE_BOOKS_REQUEST_DELAY_MS": "0",
            "GOODREADS_API_KEY": "goodreads-key",
            "GOODREADS_USER_ID": "12345",
            "DISCOGS_API_KEY": "discogs-token",
            "DISCOGS_USERNAME": "collector",
            "DISCOGS_BATCH_DELAY_MS": "0",
            "LOG_LEVEL": "DEBUG",
        }
    )
    reset_engine_for_tests()
    try:
        yield
    finally:
        reset_engine_for_tests()
        override_runtime_env(None)
