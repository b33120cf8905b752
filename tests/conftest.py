import pytest

from fakes import OWNER, FakeClock, FakeGateway

from tasktrack.cache import QueryCache
from tasktrack.mutations import MutationCoordinator
from tasktrack.session_store import SessionStore


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(stale_time=300, gc_time=600, retry=1, clock=clock)


@pytest.fixture
def session():
    store = SessionStore()
    store.set_identity(OWNER)
    return store


@pytest.fixture
def coordinator(cache, gateway, session):
    return MutationCoordinator(cache, gateway, session)
