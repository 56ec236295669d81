"""WebSocket endpoint for viewers following session changes."""

from fastapi import APIRouter, WebSocket

from proctor.domain.realtime.viewer import ViewerSession

# Mounted at the root rather than under the API prefix
UNPREFIXED = True

router = APIRouter()


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket):
    """Push channel. Send {"action": "subscribeAll"} or
    {"action": "subscribeSession", "sessionCode": "..."} to start receiving updates.

    The server sends a Ping message every WS_PING_PERIOD; a listener that can
    still be written to stays connected without replying."""
    await websocket.accept()

    viewer = ViewerSession(
        websocket,
        websocket.app.state.hub,
        websocket.app.state.viewer_settings,
    )
    await viewer.serve()
