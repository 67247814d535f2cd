"""Shared test fixtures for docsync."""

import pytest
from loguru import logger

from docsync.config import SyncSettings
from fakes import FakeEmbedder, FakeExtractor, FakeIndex


@pytest.fixture(autouse=True)
def _quiet_logger():
    logger.remove()
    yield


@pytest.fixture()
def settings() -> SyncSettings:
    return SyncSettings(
        chunk_size=200,
        chunk_overlap=40,
        min_content_chars=50,
        workers=2,
        retries=1,
    )


@pytest.fixture()
def index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
