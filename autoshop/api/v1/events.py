from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from autoshop.core.dependencies import get_event_publisher
from autoshop.services.events import EventPublisher

router = APIRouter()


@router.websocket("/ws/orders")
async def order_events(
    websocket: WebSocket,
    branch: Optional[str] = Query(None),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Stream new_order / order_updated events; ``branch`` joins that branch's group too."""
    await publisher.connect(websocket, branch)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        publisher.disconnect(websocket)
