"""Fixtures compartidas."""

from datetime import datetime, timezone

import pytest

from faro.analysis import BatchQualifier
from faro.config import Settings

from helpers.fakes import FakeProvider


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        typesense_scoped_key="test-key",
        gemini_api_key="test-gemini",
        app_user_id="user_default",
        qualification_batch_delay=0,
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def qualifier(provider):
    return BatchQualifier(provider=provider, threshold=60, batch_size=25, batch_delay=0)


@pytest.fixture
def fixed_now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
