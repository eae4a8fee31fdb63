"""Pytest configuration and fixtures."""

import pytest

from sandbox_runner.infrastructure.cache import ContainerConfigCache
from tests.helpers import FakeContainerEngine, FakeProposer


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "config-cache"


@pytest.fixture
def config_cache(cache_dir):
    return ContainerConfigCache(cache_dir, max_memory_size=10)


@pytest.fixture
def engine():
    return FakeContainerEngine()


@pytest.fixture
def proposer():
    return FakeProposer()
