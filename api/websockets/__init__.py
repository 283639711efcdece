"""WebSocket push channel for notifications."""

from fastapi import APIRouter, WebSocket

# Create router
router = APIRouter(
    prefix="/ws",
    tags=["WebSocket"]
)

@router.websocket("")
async def push_endpoint(websocket: WebSocket):
    """Authenticated push channel.

    Clients connect with ``?token=<jwt>``; a missing, invalid or blocked
    token closes the socket with code 4001. Sending ``ping`` gets ``pong``.
    """
    await websocket.app.state.services.hub.handle(websocket)
