"""
Console channel - drives the gateway from stdin/stdout.

Each input line is one message. A line of the form ``alice> text`` is sent
as user ``alice``; other lines use the configured default user.
"""
import asyncio
import logging
import sys
from typing import Optional, TextIO

from channels.base import BaseChannel, IncomingMessage

logger = logging.getLogger(__name__)


class ConsoleChannel(BaseChannel):
    """Line-oriented local transport, mainly for trying routes by hand."""

    def __init__(self, config: dict, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        super().__init__(config)
        self.default_user = str(config.get("user_id", "console"))
        self.chat_id = str(config.get("chat_id", "console"))
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._task: Optional[asyncio.Task] = None
        self.closed = asyncio.Event()

    def parse_line(self, line: str) -> Optional[IncomingMessage]:
        text = line.strip()
        if not text:
            return None
        user_id = self.default_user
        head, sep, rest = text.partition(">")
        if sep and head and " " not in head.strip():
            user_id = head.strip()
            text = rest.strip()
        return IncomingMessage(
            channel="console",
            chat_id=self.chat_id,
            user_id=user_id,
            text=text,
            sender_username=user_id,
            sender_display_name=user_id,
        )

    async def _read_loop(self) -> None:
        while True:
            line = await asyncio.to_thread(self._stdin.readline)
            if not line:
                break
            message = self.parse_line(line)
            if message is None or self._message_handler is None:
                continue
            await self._message_handler(message)
        logger.info("Console input closed")
        self.closed.set()

    async def start(self):
        self._task = asyncio.create_task(self._read_loop())

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def send_text(self, chat_id: str, text: str):
        self._stdout.write(f"[{chat_id}] {text}\n")
        self._stdout.flush()
