import pytest
import pytest_asyncio

from proctor.domain.exam.registry import SessionRegistry
from proctor.domain.exam.session_store import SessionStore
from proctor.domain.realtime.hub import BroadcastHub
from tests.support import FIXED_NOW, FakeViewer


@pytest.fixture
def clock():
    """Frozen clock so start and end times are predictable."""
    return lambda: FIXED_NOW


@pytest.fixture
def store(tmp_path) -> SessionStore:
    """JSON store in a per-test temporary directory."""
    return SessionStore(tmp_path / "rooms.json")


@pytest_asyncio.fixture
async def hub():
    """Running broadcast hub, stopped after the test."""
    hub = BroadcastHub()
    hub.start()
    yield hub
    await hub.stop()


@pytest_asyncio.fixture
async def registry(store, hub, clock):
    """Registry wired to the temp store, the hub and the frozen clock."""
    registry = SessionRegistry(store=store, hub=hub, clock=clock)
    yield registry
    await registry.flush()


@pytest.fixture
def make_viewer():
    """Factory for in-memory viewers the hub can deliver to."""

    def _make(viewer_id: str = "viewer", queue_size: int = 16) -> FakeViewer:
        return FakeViewer(viewer_id, queue_size)

    return _make
