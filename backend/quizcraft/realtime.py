# In-process quiz rooms relaying live answer events. Rooms hold no scoring
# state; a socket that fails to receive is dropped from its rooms.
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger("quizcraft.realtime")

JOIN_QUIZ = "join-quiz"
SUBMIT_ANSWER = "submit-answer"
ANSWER_SUBMITTED = "answer-submitted"


class RoomManager:
    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._pending: Set[asyncio.Task] = set()

    def join(self, quiz_id: str, websocket: WebSocket) -> None:
        self._rooms[quiz_id].add(websocket)
        logger.info("socket joined quiz room %s (%d members)", quiz_id, len(self._rooms[quiz_id]))

    def leave(self, websocket: WebSocket) -> None:
        for quiz_id in list(self._rooms):
            members = self._rooms[quiz_id]
            members.discard(websocket)
            if not members:
                del self._rooms[quiz_id]

    def members(self, quiz_id: str) -> Set[WebSocket]:
        return set(self._rooms.get(quiz_id, ()))

    # Send event to every room member except sender; returns the delivery count.
    async def broadcast(
        self, quiz_id: str, event: Dict[str, Any], sender: Optional[WebSocket] = None
    ) -> int:
        delivered = 0
        for websocket in self.members(quiz_id):
            if websocket is sender:
                continue
            try:
                await websocket.send_json(event)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.warning("dropping socket from room %s: %s", quiz_id, exc)
                self.leave(websocket)
        return delivered

    # Schedule a broadcast without waiting for it.
    def publish(
        self, quiz_id: str, event: Dict[str, Any], sender: Optional[WebSocket] = None
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.broadcast(quiz_id, event, sender))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task


# Serve one client connection until it disconnects.
async def relay(websocket: WebSocket, rooms: RoomManager) -> None:
    await websocket.accept()
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "invalid json"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "detail": "message must be an object"})
                continue

            message_type = message.get("type")
            quiz_id = message.get("quiz_id")
            if not quiz_id:
                await websocket.send_json({"type": "error", "detail": "quiz_id is required"})
                continue
            quiz_id = str(quiz_id)

            if message_type == JOIN_QUIZ:
                rooms.join(quiz_id, websocket)
                await websocket.send_json({"type": "joined", "quiz_id": quiz_id})
            elif message_type == SUBMIT_ANSWER:
                rooms.publish(
                    quiz_id, {"type": ANSWER_SUBMITTED, "data": message}, sender=websocket
                )
            else:
                await websocket.send_json(
                    {"type": "error", "detail": f"unknown message type: {message_type}"}
                )
    except WebSocketDisconnect:
        logger.debug("socket disconnected")
    finally:
        rooms.leave(websocket)
