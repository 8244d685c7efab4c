"""Shared pytest fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from assetport.config import get_settings


@pytest.fixture
def temp_config_yaml(tmp_path):
    """Create a temporary assetport.yaml file for testing."""
    config_path = tmp_path / "assetport.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def clean_settings_cache():
    """Clear the cached settings around a test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def local_root(tmp_path):
    """An empty directory to use as a local storage root."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def async_iter():
    """Factory for async iterators over a list, like SDK paged results."""

    def _make(items, error=None):
        async def _gen():
            if error is not None:
                raise error
            for item in items:
                yield item

        return _gen()

    return _make


@pytest.fixture
def async_context():
    """Factory for MagicMocks usable as ``async with ... as value``."""

    def _make(value):
        cm = MagicMock()
        cm.__aenter__ = AsyncMock(return_value=value)
        cm.__aexit__ = AsyncMock(return_value=False)
        return cm

    return _make
