"""
WebSocket connection registry and broadcaster for the chat room.
"""

import json
import logging
from typing import Any, Dict, Optional

from aiohttp import WSMsgType, web

from chat_pipeline.history import ChatHistory

logger = logging.getLogger(__name__)


class ChatHub:
    """
    Tracks open chat connections and fans messages out to them.

    Connections are keyed by their WebSocketResponse. The registry is only
    touched from the event loop.

    Args:
        history: Message store shared with the REST endpoints
    """

    def __init__(self, history: ChatHistory):
        self.history = history
        self.connections: set = set()
        self.users: Dict[Any, Dict[str, Any]] = {}

    @property
    def user_count(self) -> int:
        return len(self.users)

    async def broadcast(self, payload: Dict[str, Any]) -> None:
        """Send a JSON payload to every open connection."""
        for ws in list(self.connections):
            if ws.closed:
                continue
            try:
                await ws.send_json(payload)
            except ConnectionResetError as e:
                logger.warning(f"[CHAT] ✗ Broadcast to a closing socket failed: {e}")

    async def broadcast_user_count(self) -> None:
        await self.broadcast({"type": "user_count", "count": self.user_count})

    async def connect(self, ws) -> None:
        self.connections.add(ws)
        logger.info(f"[CHAT] Client connected ({len(self.connections)} connection(s))")
        await self.broadcast_user_count()

    async def disconnect(self, ws) -> None:
        self.connections.discard(ws)
        self.users.pop(ws, None)
        logger.info(f"[CHAT] User disconnected ({self.user_count} online)")
        await self.broadcast_user_count()

    async def post_message(self, username: str, age: int, message: str) -> Dict[str, Any]:
        """Store a message and broadcast it."""
        stored = self.history.add_message(username, age, message)
        await self.broadcast({"type": "new_message", "message": stored})
        return stored

    async def handle_payload(self, ws, payload: Any) -> Optional[Dict[str, Any]]:
        """
        Apply one decoded client message.

        Supported types:
            join: {"type": "join", "username", "age"}
            message: {"type": "message", "username", "age", "message"}

        Returns:
            The stored message for "message" payloads, else None
        """
        if not isinstance(payload, dict):
            logger.warning("[CHAT] Ignoring non-object payload")
            return None

        kind = payload.get('type')
        if kind == 'join':
            self.users[ws] = {"username": payload.get('username'), "age": payload.get('age')}
            logger.info(f"[CHAT] User joined: {payload.get('username')} ({self.user_count} online)")
            await self.broadcast_user_count()
            return None

        if kind == 'message':
            text = payload.get('message')
            if not isinstance(text, str) or not text.strip():
                logger.warning("[CHAT] Ignoring empty message")
                return None
            return await self.post_message(payload.get('username') or 'Anonymous', payload.get('age') or 0, text)

        logger.debug(f"[CHAT] Ignoring unknown message type: {kind}")
        return None

    async def handle_socket(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp handler for GET /ws."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await self.connect(ws)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        payload = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        logger.error(f"[CHAT] ✗ WebSocket message error: {e}")
                        continue
                    await self.handle_payload(ws, payload)
                elif msg.type == WSMsgType.ERROR:
                    logger.error(f"[CHAT] ✗ WebSocket closed with exception: {ws.exception()}")
        finally:
            await self.disconnect(ws)

        return ws
