"""One viewer push connection bridged to the broadcast hub."""

import asyncio
from dataclasses import dataclass

import orjson
from fastapi import WebSocket
from loguru import logger
from pydantic import ValidationError
from starlette import status
from starlette.websockets import WebSocketDisconnect, WebSocketState

from proctor.app_config import AppEnvironConfig
from proctor.domain.utils.idgen import new_opaque_id

from .hub import BroadcastHub
from .realtime_models import ALL_TOPIC, Notification, NotificationType, ViewerAction, ViewerCommand

_TRANSPORT_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


@dataclass(frozen=True)
class ViewerSettings:
    queue_size: int = 256
    # Seconds allowed for one outbound frame
    write_wait: float = 10.0
    # Seconds without traffic either way before the peer is considered dead
    pong_wait: float = 60.0
    # Seconds between keepalive pings; must be below pong_wait
    ping_period: float = 54.0
    # Bytes
    max_message_size: int = 512

    @classmethod
    def from_config(cls, cfg: AppEnvironConfig) -> "ViewerSettings":
        return cls(
            queue_size=cfg.VIEWER_QUEUE_SIZE,
            write_wait=cfg.WS_WRITE_WAIT,
            pong_wait=cfg.WS_PONG_WAIT,
            ping_period=cfg.WS_PING_PERIOD,
            max_message_size=cfg.WS_MAX_MESSAGE_SIZE,
        )


class ViewerSession:
    """Middleman between one WebSocket and the hub.

    Runs a read pump (control messages in, idle timeout) and a write pump
    (queued frames and keepalive pings out) concurrently. They share nothing
    but the outbound queue, which the hub fills and releases. ``topics`` is
    owned by the hub.

    The idle timeout only ends a peer that neither sends nor accepts frames:
    every delivered write pushes the read deadline back, so a silent listener
    stays connected as long as pings reach it.
    """

    def __init__(
        self,
        websocket: WebSocket,
        hub: BroadcastHub,
        settings: ViewerSettings | None = None,
    ):
        self.viewer_id = new_opaque_id()
        self.websocket = websocket
        self.hub = hub
        self.settings = settings or ViewerSettings()

        # None is the release sentinel
        self.outbox: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=self.settings.queue_size)
        self.topics: set[str] = set()

        self._released = False
        self._close_code = status.WS_1000_NORMAL_CLOSURE
        self._closed = False
        # Idle deadline of the read in progress; pushed back by any traffic either way
        self._idle: asyncio.Timeout | None = None
        self._ping_frame = orjson.dumps(
            Notification(type=NotificationType.PING, target=self.viewer_id).model_dump(mode="json")
        )

    @property
    def released(self) -> bool:
        return self._released

    def release(self, close_code: int = status.WS_1000_NORMAL_CLOSURE) -> None:
        """Called by the hub once the viewer leaves the live set."""
        if self._released:
            return
        self._released = True
        self._close_code = close_code
        try:
            self.outbox.put_nowait(None)
        except asyncio.QueueFull:
            # Writer checks `released` after its next dequeue
            logger.debug("Viewer {} released with a full queue", self.viewer_id)

    async def serve(self) -> None:
        """Run both pumps until either stops, then unregister and close the socket."""
        self.hub.register(self)
        logger.info("Viewer {} connected", self.viewer_id)

        reader = asyncio.create_task(self._read_pump(), name=f"viewer-read:{self.viewer_id}")
        writer = asyncio.create_task(self._write_pump(), name=f"viewer-write:{self.viewer_id}")
        try:
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, writer):
                task.cancel()
            results = await asyncio.gather(reader, writer, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.opt(exception=result).error(
                        "Viewer {} pump crashed: {}", self.viewer_id, result
                    )

            self.hub.unregister(self, self._close_code)
            await self._close()
            logger.info("Viewer {} disconnected (code={})", self.viewer_id, self._close_code)

    # ==================== READ PUMP ====================

    async def _read_pump(self) -> None:
        try:
            while True:
                async with asyncio.timeout(self.settings.pong_wait) as idle:
                    self._idle = idle
                    try:
                        message = await self.websocket.receive()
                    finally:
                        self._idle = None

                if message["type"] == "websocket.disconnect":
                    return

                text = message.get("text")
                if text is None:
                    logger.info("Viewer {} sent a binary frame, closing", self.viewer_id)
                    self._close_code = status.WS_1003_UNSUPPORTED_DATA
                    return

                if len(text.encode("utf-8")) > self.settings.max_message_size:
                    logger.info("Viewer {} sent an oversized frame, closing", self.viewer_id)
                    self._close_code = status.WS_1009_MESSAGE_TOO_BIG
                    return

                self._handle_command(text)
        except TimeoutError:
            logger.info(
                "Viewer {} silent for {}s, closing", self.viewer_id, self.settings.pong_wait
            )
            self._close_code = status.WS_1001_GOING_AWAY
        except _TRANSPORT_ERRORS as e:
            logger.debug("Viewer {} read failed: {}", self.viewer_id, e)
        finally:
            self.hub.unregister(self, self._close_code)

    def _handle_command(self, text: str) -> None:
        try:
            command = ViewerCommand.model_validate_json(text)
        except ValidationError:
            logger.debug("Viewer {} sent a malformed message, dropped", self.viewer_id)
            return

        action = command.action
        if action == ViewerAction.SUBSCRIBE_ALL:
            self.hub.subscribe(self, ALL_TOPIC)
        elif action == ViewerAction.UNSUBSCRIBE_ALL:
            self.hub.unsubscribe(self, ALL_TOPIC)
        elif action == ViewerAction.SUBSCRIBE_SESSION and command.session_code:
            self.hub.subscribe(self, command.session_code)
        elif action == ViewerAction.UNSUBSCRIBE_SESSION and command.session_code:
            self.hub.unsubscribe(self, command.session_code)
        # pong and unknown actions only count as traffic

    # ==================== WRITE PUMP ====================

    async def _write_pump(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.settings.ping_period

        while True:
            try:
                async with asyncio.timeout(max(0.0, next_ping - loop.time())):
                    frame = await self.outbox.get()
            except TimeoutError:
                if not await self._send(self._ping_frame):
                    return
                next_ping = loop.time() + self.settings.ping_period
                continue

            if frame is None or self._released:
                return

            # Coalesce whatever is already queued into one frame
            batch = [frame]
            stop_after = False
            while not self.outbox.empty():
                queued = self.outbox.get_nowait()
                if queued is None:
                    stop_after = True
                    break
                batch.append(queued)

            if not await self._send(b"\n".join(batch)):
                return
            if stop_after:
                return

    async def _send(self, data: bytes) -> bool:
        try:
            async with asyncio.timeout(self.settings.write_wait):
                await self.websocket.send_text(data.decode("utf-8"))
        except TimeoutError:
            logger.info("Viewer {} write timed out, closing", self.viewer_id)
            self._close_code = status.WS_1001_GOING_AWAY
            return False
        except _TRANSPORT_ERRORS as e:
            logger.debug("Viewer {} write failed: {}", self.viewer_id, e)
            return False
        self._keep_alive()
        return True

    def _keep_alive(self) -> None:
        """A delivered write proves the peer is reachable even when it never speaks."""
        idle = self._idle
        if idle is not None and not idle.expired():
            idle.reschedule(asyncio.get_running_loop().time() + self.settings.pong_wait)

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if (
            self.websocket.application_state == WebSocketState.DISCONNECTED
            or self.websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self.websocket.close(code=self._close_code)
        except _TRANSPORT_ERRORS as e:
            logger.debug("Viewer {} close failed: {}", self.viewer_id, e)
