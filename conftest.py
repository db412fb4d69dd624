"""Pytest configuration: custom markers and shared fixtures."""
import numpy as np
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--slow", action="store_true", default=False,
        help="Run slow statistical tests (large resampling frequency checks)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: mark test as slow statistical check"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--slow"):
        # When --slow is passed, run everything
        return
    skip_slow = pytest.mark.skip(reason="needs --slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def rng():
    return np.random.default_rng(20240607)
