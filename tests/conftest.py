import pytest

from feedscout.async_queue.store import SearchStore
from tests.helpers import FakeClock, StubExecutor


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    s = SearchStore(tmp_path / "feedscout.db")
    yield s
    s.close()


@pytest.fixture
def executor() -> StubExecutor:
    return StubExecutor()
