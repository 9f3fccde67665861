"""
Base classes for message channels
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Callable, Awaitable


@dataclass
class IncomingMessage:
    """Unified message format from any channel"""
    channel: str  # "console" | ...
    chat_id: str  # Channel-specific chat identifier
    user_id: str  # User unique identifier
    text: str  # Message text
    is_private: bool = True  # Is this a private chat?
    sender_username: Optional[str] = None  # Handle used in mentions
    sender_display_name: Optional[str] = None  # Human readable name


class BaseChannel(ABC):
    """Abstract base class for message channels"""

    supports_files: bool = False

    def __init__(self, config: dict):
        self.config = config
        self._message_handler: Optional[Callable[[IncomingMessage], Awaitable[None]]] = None

    @abstractmethod
    async def start(self):
        """Start listening for messages"""
        pass

    @abstractmethod
    async def stop(self):
        """Gracefully stop the channel"""
        pass

    @abstractmethod
    async def send_text(self, chat_id: str, text: str):
        """Send text message"""
        pass

    async def send_file(self, chat_id: str, filepath: str, caption: str = ""):
        """Send file attachment"""
        raise NotImplementedError(f"{type(self).__name__} cannot send files")

    def set_message_handler(self, handler: Callable[[IncomingMessage], Awaitable[None]]):
        """Register message callback"""
        self._message_handler = handler
