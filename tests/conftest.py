"""Shared fixtures for the Hotlist test suite."""

from unittest.mock import MagicMock

import pytest

from hotlist.data.market_data_client import MarketDataClient
from hotlist.lifecycle.entity_store import InMemoryEntityStore
from hotlist.queue.work_queue import InMemoryWorkQueue

from factories import FakeClock, make_lifecycle_config, make_queue_config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def entity_store():
    return InMemoryEntityStore()


@pytest.fixture
def work_queue(clock):
    return InMemoryWorkQueue(clock=clock)


@pytest.fixture
def queue_config():
    return make_queue_config()


@pytest.fixture
def lifecycle_config():
    return make_lifecycle_config()


@pytest.fixture
def client():
    """Market-data client with every method mocked."""
    mock = MagicMock(spec=MarketDataClient)
    mock.health_check.return_value = {"status": "healthy", "api_url": "https://api.test"}
    return mock
