"""Tests for the asyncio reader/writer lock."""

import asyncio

import pytest

from proctor.shared.lock import ReadWriteLock


class TestReadWriteLock:
    """Tests for ReadWriteLock ordering and ownership."""

    async def test_readers_share(self):
        """Should let several readers hold the lock together."""
        # Arrange
        lock = ReadWriteLock()

        # Act
        await lock.acquire_read()
        await lock.acquire_read()

        # Assert
        assert lock.readers == 2
        lock.release_read()
        lock.release_read()
        assert lock.readers == 0

    async def test_writer_excludes_readers(self):
        """Should hold readers back until the writer releases."""
        # Arrange
        lock = ReadWriteLock()
        await lock.acquire_write()

        # Act
        reader = asyncio.create_task(lock.acquire_read())
        await asyncio.sleep(0)

        # Assert
        assert not reader.done()
        lock.release_write()
        await reader
        assert lock.readers == 1
        assert lock.writer_active is False

    async def test_writer_waits_for_readers(self):
        """Should grant the writer only after the last reader leaves."""
        # Arrange
        lock = ReadWriteLock()
        await lock.acquire_read()

        # Act
        writer = asyncio.create_task(lock.acquire_write())
        await asyncio.sleep(0)

        # Assert
        assert not writer.done()
        lock.release_read()
        await writer
        assert lock.writer_active is True

    async def test_queued_writer_blocks_new_readers(self):
        """A reader arriving behind a waiting writer does not jump the queue."""
        # Arrange
        lock = ReadWriteLock()
        order: list[str] = []
        await lock.acquire_read()

        async def write():
            async with lock.writer():
                order.append("writer")

        async def read():
            async with lock.reader():
                order.append("reader")

        writer = asyncio.create_task(write())
        await asyncio.sleep(0)
        reader = asyncio.create_task(read())
        await asyncio.sleep(0)

        # Act
        lock.release_read()
        await asyncio.gather(writer, reader)

        # Assert
        assert order == ["writer", "reader"]

    async def test_release_is_synchronous_grant(self):
        """Releasing hands the lock over without the releaser yielding."""
        # Arrange
        lock = ReadWriteLock()
        await lock.acquire_write()
        waiter = asyncio.create_task(lock.acquire_write())
        await asyncio.sleep(0)

        # Act
        lock.release_write()

        # Assert: ownership moved even though the waiter has not run yet
        assert lock.writer_active is True
        await waiter
        lock.release_write()

    async def test_cancelled_waiter_does_not_hold_lock(self):
        """Should drop a cancelled waiter from the queue."""
        # Arrange
        lock = ReadWriteLock()
        await lock.acquire_write()
        waiter = asyncio.create_task(lock.acquire_write())
        await asyncio.sleep(0)

        # Act
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        lock.release_write()

        # Assert
        assert lock.writer_active is False
        async with lock.reader():
            assert lock.readers == 1

    async def test_exception_releases(self):
        """Should release the writer when the guarded block raises."""
        # Arrange
        lock = ReadWriteLock()

        # Act
        with pytest.raises(ValueError):
            async with lock.writer():
                raise ValueError("boom")

        # Assert
        assert lock.writer_active is False

    def test_release_without_hold_raises(self):
        """Should refuse to release a lock that is not held."""
        lock = ReadWriteLock()

        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()
