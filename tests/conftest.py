from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("STORAGE_BACKEND", "memory")

from exports_rw.common.config import Settings, get_settings  # noqa: E402
from exports_rw.main import create_app  # noqa: E402
from tests.services.mock_storage import RecordingObjectStore  # noqa: E402

CONTENT_PREFIX = "content"
CONCEPT_PREFIX = "concepts"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        BUCKET_CONTENT_PREFIX=CONTENT_PREFIX,
        BUCKET_CONCEPT_PREFIX=CONCEPT_PREFIX,
        EXPORT_WORKERS=3,
        ENABLE_METRICS=False,
    )


@pytest.fixture()
def store() -> RecordingObjectStore:
    return RecordingObjectStore(default_page_size=2)


@pytest.fixture()
def client(settings, store):
    app = create_app(settings=settings, store=store)
    with TestClient(app) as test_client:
        yield test_client
