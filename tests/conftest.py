import pytest

from loadscope.config import LoadscopeConfig
from tests.helpers import FeedServer


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


@pytest.fixture
def config() -> LoadscopeConfig:
    return LoadscopeConfig(base_url="http://loadscope.test", api_key="test-key")
