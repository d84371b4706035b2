import os
import tempfile
from pathlib import Path

import pytest

_LAYER_MARKERS = {
    "domain": pytest.mark.domain,
    "application": pytest.mark.application,
    "integration": pytest.mark.integration,
    "bdd": pytest.mark.bdd,
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Environment the checkout core runs under (PROTEAN_ENV)",
    )


def pytest_sessionstart(session):
    """Runs before ``checkout.domain`` is imported, so logging picks these up."""
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("CHECKOUT_LOG_DIR", str(Path(tempfile.gettempdir()) / "checkout-test-logs"))


def pytest_collection_modifyitems(config, items):
    """Mark tests by the layer directory they live in."""
    for item in items:
        parts = Path(item.fspath).parts
        for layer, marker in _LAYER_MARKERS.items():
            if layer in parts:
                item.add_marker(marker)
                if layer == "integration" and not any(m.name == "fast" for m in item.iter_markers()):
                    item.add_marker(pytest.mark.slow)
                break
