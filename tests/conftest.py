from collections.abc import Sequence
from dataclasses import replace

import pytest

from modsearch.core.config import Config, config


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration/e2e tests that require the live catalog API.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: requires network access or a running gateway"
    )
    config.addinivalue_line("markers", "e2e: end-to-end runtime tests")
    config.addinivalue_line("markers", "property: property-based deterministic tests")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: Sequence[pytest.Item],
) -> None:
    run_integration = config.getoption("--run-integration")
    skip_integration = pytest.mark.skip(
        reason="integration/e2e is opt-in; rerun with --run-integration"
    )

    for item in items:
        if "tests/e2e/" in item.nodeid:
            item.add_marker("integration")
            item.add_marker("e2e")
        if (
            item.get_closest_marker("integration") or item.get_closest_marker("e2e")
        ) and not run_integration:
            item.add_marker(skip_integration)


@pytest.fixture
def fast_settings() -> Config:
    """Default settings with no pacing and a local upstream, so tests never sleep."""
    return replace(
        config,
        upstream_search_url="https://catalog.test/api/mod",
        gateway_url="http://gateway.test/api/search",
        batch_pacing_seconds=0.0,
        slow_search_notice_seconds=30.0,
    )
