"""
Message history for the public chat room.
Stores chat messages in memory with a rolling window.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from itertools import count
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ChatHistory:
    """
    Rolling in-memory history of chat messages.

    Messages get an increasing id and a UTC timestamp when stored. All
    access happens on the event loop, so no lock is needed.
    """

    def __init__(self, max_messages: int = 100):
        """
        Initialize the history.

        Args:
            max_messages: Maximum number of messages kept (default: 100)
        """
        self.max_messages = max_messages
        # deque with maxlen drops the oldest message automatically
        self.messages: deque = deque(maxlen=max_messages)
        self._ids = count(1)
        logger.info(f"[CHAT] ChatHistory initialized with max_messages={max_messages}")

    def add_message(self, username: str, age: int, message: str) -> Dict[str, Any]:
        """
        Store a message.

        Returns:
            The stored message: id, username, age, message, timestamp
        """
        stored = {
            "id": next(self._ids),
            "username": username,
            "age": age,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self.messages.append(stored)
        logger.debug(f"[CHAT] Stored message {stored['id']}, history size: {len(self.messages)}/{self.max_messages}")
        return stored

    def get_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Retrieve the latest messages.

        Returns:
            List of message dictionaries (oldest to newest)
        """
        history = list(self.messages)
        if limit and limit < len(history):
            history = history[-limit:]
        return history
