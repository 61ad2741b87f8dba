"""Configuration for integration tests."""

import pytest


def pytest_configure(config):
    """Add integration markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as requiring integration with real services"
    )
    config.addinivalue_line(
        "markers", "ci_safe: integration test that stubs all external calls"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested.

    Tests marked with 'ci_safe' are always run (even inside the integration
    directory) because they talk to the in-process fake gate service only.
    """
    if not config.getoption("--integration", default=False):
        skip_integration = pytest.mark.skip(reason="Need --integration option to run")
        for item in items:
            if "integration" in item.keywords and "ci_safe" not in item.keywords:
                item.add_marker(skip_integration)
