"""Tests for ViewerSession read/write pumps against an in-memory WebSocket."""

import asyncio

import orjson
import pytest
from starlette.websockets import WebSocketState

from proctor.domain.realtime.realtime_models import ALL_TOPIC, NotificationType
from proctor.domain.realtime.viewer import ViewerSession, ViewerSettings


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self, send_delay: float = 0.0):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.close_codes: list[int] = []
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED
        self.send_delay = send_delay

    async def receive(self):
        message = await self.inbound.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, data: str):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.application_state = WebSocketState.DISCONNECTED
        self.close_codes.append(code)

    def push_text(self, text: str):
        self.inbound.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes):
        self.inbound.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self):
        self.inbound.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def messages(self) -> list[dict]:
        return [orjson.loads(line) for frame in self.sent for line in frame.split("\n")]


async def eventually(predicate, timeout: float = 2.0):
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def fast_settings(**overrides) -> ViewerSettings:
    fields = {
        "queue_size": 16,
        "write_wait": 1.0,
        "pong_wait": 5.0,
        "ping_period": 4.0,
        "max_message_size": 512,
    }
    fields.update(overrides)
    return ViewerSettings(**fields)


@pytest.fixture
def websocket():
    return FakeWebSocket()


class TestCommands:
    """Tests for the subscribe and unsubscribe actions."""

    async def test_subscribe_session_receives_updates(self, hub, websocket):
        """Should receive updates for the subscribed session and nothing else."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())
        websocket.push_text('{"action": "subscribeSession", "sessionCode": "ABC123"}')
        await eventually(lambda: any(m["type"] == "Subscribed" for m in websocket.messages()))

        # Act
        hub.publish("ABC123", NotificationType.SESSION_CHANGED, {"state": "active"})
        hub.publish(ALL_TOPIC, NotificationType.LIST_CHANGED)
        await eventually(lambda: len(websocket.messages()) >= 2)

        # Assert
        messages = websocket.messages()
        assert messages[0] == {"type": "Subscribed", "target": "ABC123", "payload": None}
        assert messages[1]["type"] == "SessionChanged"
        assert messages[1]["payload"] == {"state": "active"}

        websocket.disconnect()
        await task
        await hub.sync()
        assert not hub.is_registered(viewer)
        assert all(m["type"] != "ListChanged" for m in websocket.messages())

    async def test_subscribe_and_unsubscribe_all(self, hub, websocket):
        """Should acknowledge subscribeAll and unsubscribeAll in order."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())

        # Act
        websocket.push_text('{"action": "subscribeAll"}')
        await eventually(lambda: ALL_TOPIC in viewer.topics)
        websocket.push_text('{"action": "unsubscribeAll"}')
        await eventually(lambda: len(websocket.messages()) == 2)
        websocket.disconnect()
        await task

        # Assert
        assert [m["type"] for m in websocket.messages()] == ["Subscribed", "Unsubscribed"]

    async def test_malformed_and_unknown_messages_dropped(self, hub, websocket):
        """Bad input is ignored and the connection stays usable."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())

        # Act
        websocket.push_text("not json")
        websocket.push_text('{"sessionCode": "ABC123"}')
        websocket.push_text('{"action": "dance"}')
        websocket.push_text('{"action": "subscribeSession"}')
        websocket.push_text('{"action": "pong"}')
        websocket.push_text('{"action": "subscribeAll"}')
        await eventually(lambda: ALL_TOPIC in viewer.topics)

        # Assert
        assert viewer.topics == {ALL_TOPIC}
        assert not task.done()

        websocket.disconnect()
        await task


class TestReadPump:
    """Tests for inbound frame handling and the idle timeout."""

    async def test_disconnect_unregisters_without_close(self, hub, websocket):
        """Should unregister on peer disconnect without sending a close frame."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())
        await eventually(lambda: hub.is_registered(viewer))

        # Act
        websocket.disconnect()
        await task
        await hub.sync()

        # Assert
        assert not hub.is_registered(viewer)
        assert websocket.close_codes == []

    async def test_binary_frame_closes_1003(self, hub, websocket):
        """Should close with 1003 on a binary frame."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())

        # Act
        websocket.push_bytes(b"\x00\x01")
        await task

        # Assert
        assert websocket.close_codes == [1003]

    async def test_oversized_frame_closes_1009(self, hub, websocket):
        """Should close with 1009 before acting on an oversized frame."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(max_message_size=32))
        task = asyncio.create_task(viewer.serve())

        # Act
        websocket.push_text('{"action": "subscribeSession", "sessionCode": "' + "X" * 64 + '"}')
        await task

        # Assert
        assert websocket.close_codes == [1009]
        assert viewer.topics == set()

    async def test_idle_timeout_closes_1001(self, hub, websocket):
        """Should close with 1001 when nothing moves in either direction."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(pong_wait=0.05, ping_period=10))

        # Act
        task = asyncio.create_task(viewer.serve())
        await asyncio.wait_for(task, timeout=2)

        # Assert
        assert websocket.close_codes == [1001]
        await hub.sync()
        assert not hub.is_registered(viewer)

    async def test_traffic_resets_idle_timer(self, hub, websocket):
        """Should keep a peer that keeps sending within the idle window."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(pong_wait=0.2, ping_period=10))
        task = asyncio.create_task(viewer.serve())

        # Act
        for _ in range(5):
            await asyncio.sleep(0.08)
            websocket.push_text('{"action": "pong"}')

        # Assert
        assert not task.done()
        websocket.disconnect()
        await task

    async def test_silent_subscriber_kept_alive_by_pings(self, hub, websocket):
        """A viewer that subscribes and never speaks again stays connected while pings go out."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(pong_wait=0.3, ping_period=0.1))
        task = asyncio.create_task(viewer.serve())
        websocket.push_text('{"action": "subscribeAll"}')
        await eventually(lambda: ALL_TOPIC in viewer.topics)

        # Act
        await asyncio.sleep(1.0)

        # Assert
        assert websocket.close_codes == []
        assert not task.done()
        assert hub.is_registered(viewer)
        assert sum(m["type"] == "Ping" for m in websocket.messages()) >= 3

        websocket.disconnect()
        await task


class TestWritePump:
    """Tests for outbound delivery, pings and write failures."""

    async def test_queued_frames_coalesced(self, hub, websocket):
        """Should join frames already queued into one newline-separated write."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        for i in range(3):
            viewer.outbox.put_nowait(orjson.dumps({"seq": i}))

        # Act
        task = asyncio.create_task(viewer.serve())
        await eventually(lambda: websocket.sent)

        # Assert
        assert websocket.sent[0] == '{"seq":0}\n{"seq":1}\n{"seq":2}'

        websocket.disconnect()
        await task

    async def test_keepalive_ping(self, hub, websocket):
        """Should send Ping frames addressed to the viewer id every ping period."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(ping_period=0.02))

        # Act
        task = asyncio.create_task(viewer.serve())
        await eventually(lambda: len(websocket.sent) >= 2)

        # Assert
        pings = websocket.messages()
        assert all(m["type"] == "Ping" for m in pings)
        assert pings[0]["target"] == viewer.viewer_id

        websocket.disconnect()
        await task

    async def test_eviction_closes_with_hub_code(self, hub, websocket):
        """Should close with the code the hub released the viewer with."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings())
        task = asyncio.create_task(viewer.serve())
        await eventually(lambda: hub.is_registered(viewer))

        # Act
        hub.unregister(viewer, 1013)
        await asyncio.wait_for(task, timeout=2)

        # Assert
        assert viewer.released
        assert websocket.close_codes == [1013]

    async def test_write_timeout_closes(self, hub):
        """Should close with 1001 when a write stalls past write_wait."""
        # Arrange
        websocket = FakeWebSocket(send_delay=1.0)
        viewer = ViewerSession(websocket, hub, fast_settings(write_wait=0.05))
        viewer.outbox.put_nowait(b'{"seq":0}')

        # Act
        task = asyncio.create_task(viewer.serve())
        await asyncio.wait_for(task, timeout=2)

        # Assert
        assert websocket.sent == []
        assert websocket.close_codes == [1001]


class TestRelease:
    """Tests for ViewerSession.release."""

    async def test_release_is_idempotent(self, hub, websocket):
        """Should queue a single stop marker however often it is called."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(queue_size=1))

        # Act
        viewer.release(1013)
        viewer.release(1000)

        # Assert
        assert viewer.released
        assert viewer.outbox.get_nowait() is None
        assert viewer.outbox.empty()

    async def test_release_with_full_queue(self, hub, websocket):
        """Should mark the viewer released even when the stop marker does not fit."""
        # Arrange
        viewer = ViewerSession(websocket, hub, fast_settings(queue_size=1))
        viewer.outbox.put_nowait(b"{}")

        # Act
        viewer.release(1013)

        # Assert
        assert viewer.released
        assert viewer.outbox.qsize() == 1
