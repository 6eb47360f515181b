import os
from pathlib import Path

import pytest

# Test layer directory -> marker
_LAYER_MARKERS = {
    "domain": pytest.mark.domain,
    "application": pytest.mark.application,
    "integration": pytest.mark.integration,
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="PROTEAN_ENV overlay from checkout/domain.toml to run the suite against",
    )


def pytest_sessionstart(session):
    """Select the Protean config overlay before the checkout domain is initialized."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Mark every test with its layer, taken from the directory it lives in."""
    for item in items:
        layers = set(Path(item.fspath).parts) & _LAYER_MARKERS.keys()
        for layer in layers:
            item.add_marker(_LAYER_MARKERS[layer])

        # API tests go through the full HTTP stack
        if "integration" in layers and not item.get_closest_marker("fast"):
            item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def reset_process_state():
    """Drop the gateway, settings and lock registries that live at module level."""
    yield

    from checkout.config import reset_settings
    from checkout.gateway import reset_gateway
    from checkout.utils.locks import locks

    reset_gateway()
    reset_settings()
    locks.reset()
