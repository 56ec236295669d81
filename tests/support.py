import asyncio
from datetime import datetime, timezone

FIXED_NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeViewer:
    """Stands in for ViewerSession inside the hub: an outbox, a topic set and release()."""

    def __init__(self, viewer_id: str = "viewer", queue_size: int = 16):
        self.viewer_id = viewer_id
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.topics: set[str] = set()
        self.released_with: list[int] = []

    def release(self, close_code: int = 1000) -> None:
        self.released_with.append(close_code)

    def frames(self) -> list[bytes]:
        items = []
        while not self.outbox.empty():
            items.append(self.outbox.get_nowait())
        return items
