"""Shared fixtures for Courier tests."""

import os
from unittest.mock import AsyncMock

import pytest

# Never pick up a developer's .env while the config module loads
os.environ.setdefault("COURIER_ENV_FILE", os.devnull)

from courier.schemas.transfer import LoaderSettings  # noqa: E402


@pytest.fixture()
def base_dir(tmp_path):
    """A base directory with empty new/, loading/ and loaded/ subdirectories."""
    base = tmp_path / "inbox"
    for name in ("new", "loading", "loaded"):
        (base / name).mkdir(parents=True)
    return base


@pytest.fixture()
def settings(base_dir):
    """Fast settings: no settle delay, no retry delay, 5s stuck threshold."""
    return LoaderSettings(
        source_directories={str(base_dir): "orders"},
        retry_attempts=2,
        retry_delay=0,
        stability_delay=0,
        stuck_threshold=5,
    )


@pytest.fixture()
def publisher():
    """A publisher whose ``send`` accepts everything."""
    mock = AsyncMock()
    mock.send.return_value = True
    return mock
