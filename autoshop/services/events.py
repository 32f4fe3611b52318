from collections import defaultdict
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from autoshop.logger_config import logger


class EventPublisher:
    """
    Websocket fan-out for order events.

    Every event goes to all subscribers once; subscribers that joined with a
    branch also receive it through their branch group, mirroring a global
    broadcast plus a ``branch_<id>`` room.
    """

    def __init__(self):
        self.subscribers: Set[WebSocket] = set()
        self.branch_groups: Dict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, branch_id: Optional[str] = None) -> None:
        await websocket.accept()
        self.subscribers.add(websocket)
        if branch_id:
            self.branch_groups[branch_id].add(websocket)
        logger.info(f"Websocket subscriber connected (branch={branch_id}), total {len(self.subscribers)}")

    def disconnect(self, websocket: WebSocket) -> None:
        self.subscribers.discard(websocket)
        for branch_id in list(self.branch_groups):
            self.branch_groups[branch_id].discard(websocket)
            if not self.branch_groups[branch_id]:
                del self.branch_groups[branch_id]
        logger.info(f"Websocket subscriber disconnected, total {len(self.subscribers)}")

    async def _send(self, websocket: WebSocket, message: dict) -> None:
        try:
            await websocket.send_json(message)
        except (RuntimeError, ConnectionError) as e:
            logger.warning(f"Dropping websocket subscriber: {str(e)}")
            self.disconnect(websocket)

    async def publish(self, event: str, payload: Any, branch_id: Optional[str] = None) -> None:
        message = {"event": event, "data": jsonable_encoder(payload)}
        for websocket in list(self.subscribers):
            await self._send(websocket, message)
        if branch_id:
            message = dict(message, branch=branch_id)
            for websocket in list(self.branch_groups.get(branch_id, ())):
                await self._send(websocket, message)
        logger.debug(f"Event {event} published (branch={branch_id})")


_publisher = EventPublisher()


def get_event_publisher() -> EventPublisher:
    return _publisher
