"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Tests run from the project root so that .project_root and
config/settings/*.yaml are found the same way the shell finds them.
"""

import pytest

from rbshell.core.config import ConnectionOptions, get_app_config, get_settings


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_config_cache():
    """Clear lru_cache between tests so each test gets a fresh load."""
    get_settings.cache_clear()
    get_app_config.cache_clear()
    yield
    get_settings.cache_clear()
    get_app_config.cache_clear()


@pytest.fixture
def connection_options() -> ConnectionOptions:
    """
    Connection options for a plain stream session without credentials.

    Usage:
        def test_something(connection_options):
            options = connection_options.model_copy(update={"framing": "length_prefixed"})
    """
    return ConnectionOptions(
        host="127.0.0.1",
        port=23561,
        database="test",
        transport="stream",
        framing="heuristic",
        buffer_size=8192,
    )
