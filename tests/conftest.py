"""Test configuration and fixtures for txpipe tests."""

import pytest

from txpipe.core.settings import Settings, get_settings


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment defaults."""
    return Settings(app_env="test")


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear cached settings between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Set asyncio mode to auto
    config.option.asyncio_mode = "auto"
