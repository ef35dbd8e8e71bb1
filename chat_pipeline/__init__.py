"""
Chat room: in-memory message history and WebSocket broadcast hub.

Independent from the media pipeline.
"""

from chat_pipeline.history import ChatHistory
from chat_pipeline.hub import ChatHub

__all__ = ['ChatHistory', 'ChatHub']
