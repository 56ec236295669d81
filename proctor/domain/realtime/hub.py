"""Broadcast hub fanning registry changes out to viewer connections."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import orjson
from loguru import logger
from starlette import status

from .realtime_models import Notification, NotificationType

if TYPE_CHECKING:
    from .viewer import ViewerSession


@dataclass(slots=True)
class _Register:
    viewer: ViewerSession


@dataclass(slots=True)
class _Unregister:
    viewer: ViewerSession
    close_code: int


@dataclass(slots=True)
class _Subscribe:
    viewer: ViewerSession
    topic: str


@dataclass(slots=True)
class _Unsubscribe:
    viewer: ViewerSession
    topic: str


@dataclass(slots=True)
class _Publish:
    notification: Notification


@dataclass(slots=True)
class _Barrier:
    done: asyncio.Event


class BroadcastHub:
    """Single owner of the live viewer set.

    Every operation is a non-blocking enqueue onto one inbox; the hub task
    applies them in arrival order, so the viewer set and each viewer's topic
    set are only ever mutated from that task. Publishing serializes the
    notification once and hands the frame to each matching viewer with
    ``put_nowait``: a viewer whose queue is full is evicted instead of
    holding up the publisher or anyone else.
    """

    def __init__(self):
        self._viewers: set[ViewerSession] = set()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_registered(self, viewer: ViewerSession) -> bool:
        return viewer in self._viewers

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="broadcast-hub")
        logger.info("Broadcast hub started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        for viewer in list(self._viewers):
            self._drop(viewer, status.WS_1001_GOING_AWAY)
        logger.info("Broadcast hub stopped")

    async def run(self) -> None:
        while True:
            command = await self._inbox.get()
            try:
                self._apply(command)
            except Exception as e:
                # One bad command must not take the hub down for every viewer
                logger.exception("Broadcast hub failed to apply {}: {}", type(command).__name__, e)

    # ==================== INBOX ====================

    def register(self, viewer: ViewerSession) -> None:
        self._inbox.put_nowait(_Register(viewer))

    def unregister(
        self, viewer: ViewerSession, close_code: int = status.WS_1000_NORMAL_CLOSURE
    ) -> None:
        """Remove a viewer and release its queue. Safe to call more than once."""
        self._inbox.put_nowait(_Unregister(viewer, close_code))

    def subscribe(self, viewer: ViewerSession, topic: str) -> None:
        self._inbox.put_nowait(_Subscribe(viewer, topic))

    def unsubscribe(self, viewer: ViewerSession, topic: str) -> None:
        self._inbox.put_nowait(_Unsubscribe(viewer, topic))

    def publish(
        self,
        topic: str,
        msg_type: NotificationType,
        payload: Any = None,
    ) -> None:
        """Queue a notification for every viewer subscribed to topic. Never blocks."""
        self._inbox.put_nowait(
            _Publish(Notification(type=msg_type, target=topic, payload=payload))
        )

    async def sync(self) -> None:
        """Wait until every command queued before this call has been applied."""
        done = asyncio.Event()
        self._inbox.put_nowait(_Barrier(done))
        await done.wait()

    # ==================== HUB TASK ====================

    def _apply(self, command) -> None:
        if isinstance(command, _Publish):
            self._fan_out(command.notification)
        elif isinstance(command, _Register):
            self._viewers.add(command.viewer)
            logger.debug(
                "Viewer {} registered ({} live)", command.viewer.viewer_id, len(self._viewers)
            )
        elif isinstance(command, _Unregister):
            self._drop(command.viewer, command.close_code)
        elif isinstance(command, _Subscribe):
            self._set_subscription(command.viewer, command.topic, subscribed=True)
        elif isinstance(command, _Unsubscribe):
            self._set_subscription(command.viewer, command.topic, subscribed=False)
        elif isinstance(command, _Barrier):
            command.done.set()

    def _fan_out(self, notification: Notification) -> None:
        frame = orjson.dumps(notification.model_dump(mode="json"))
        delivered = 0
        for viewer in list(self._viewers):
            if notification.target in viewer.topics and self._deliver(viewer, frame):
                delivered += 1
        logger.debug(
            "Published {} to {} ({} viewers)", notification.type, notification.target, delivered
        )

    def _set_subscription(self, viewer: ViewerSession, topic: str, subscribed: bool) -> None:
        if viewer not in self._viewers:
            return

        if subscribed:
            viewer.topics.add(topic)
            ack = NotificationType.SUBSCRIBED
        else:
            viewer.topics.discard(topic)
            ack = NotificationType.UNSUBSCRIBED

        frame = orjson.dumps(Notification(type=ack, target=topic).model_dump(mode="json"))
        self._deliver(viewer, frame)

    def _deliver(self, viewer: ViewerSession, frame: bytes) -> bool:
        try:
            viewer.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "Evicting slow viewer {} (queue full at {})", viewer.viewer_id, viewer.outbox.maxsize
            )
            self._drop(viewer, status.WS_1013_TRY_AGAIN_LATER)
            return False
        return True

    def _drop(self, viewer: ViewerSession, close_code: int) -> None:
        if viewer not in self._viewers:
            return
        self._viewers.discard(viewer)
        viewer.release(close_code)
        logger.debug("Viewer {} unregistered ({} live)", viewer.viewer_id, len(self._viewers))
