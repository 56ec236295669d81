import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ReadWriteLock:
    """In-process reader/writer lock for asyncio.

    Many readers may hold the lock together; a writer holds it alone. Waiters
    are granted in arrival order, so a queued writer is not starved by a
    stream of new readers: a reader arriving behind a waiting writer waits too.

    Acquiring may suspend. Releasing never does, so code that releases the
    lock and then acts (e.g. publishes a change) runs both steps without
    another task interleaving.
    """

    def __init__(self):
        self._readers = 0
        self._writer = False
        self._waiters: deque[tuple[bool, asyncio.Future]] = deque()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer

    async def acquire_read(self) -> None:
        if not self._writer and not self._waiters:
            self._readers += 1
            return
        await self._wait(is_writer=False)

    async def acquire_write(self) -> None:
        if not self._writer and self._readers == 0 and not self._waiters:
            self._writer = True
            return
        await self._wait(is_writer=True)

    def release_read(self) -> None:
        if self._readers <= 0:
            raise RuntimeError("release_read() called without a held read lock")
        self._readers -= 1
        self._wake()

    def release_write(self) -> None:
        if not self._writer:
            raise RuntimeError("release_write() called without a held write lock")
        self._writer = False
        self._wake()

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[None]:
        await self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[None]:
        await self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    async def _wait(self, is_writer: bool) -> None:
        fut = asyncio.get_running_loop().create_future()
        entry = (is_writer, fut)
        self._waiters.append(entry)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # Granted just before the cancellation landed: hand it back
                if is_writer:
                    self.release_write()
                else:
                    self.release_read()
            else:
                if entry in self._waiters:
                    self._waiters.remove(entry)
                self._wake()
            raise

    def _wake(self) -> None:
        while self._waiters and not self._writer:
            is_writer, fut = self._waiters[0]
            if fut.done():
                self._waiters.popleft()
                continue
            if is_writer:
                if self._readers:
                    break
                self._waiters.popleft()
                self._writer = True
                fut.set_result(None)
                break
            self._waiters.popleft()
            self._readers += 1
            fut.set_result(None)
