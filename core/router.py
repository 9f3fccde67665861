"""Message router — thin wrapper around the middleware pipeline."""

from __future__ import annotations

import logging
import re
from typing import Optional

from channels.base import BaseChannel, IncomingMessage
from core.auth import Auth
from core.command_registry import CommandRegistry, registry as builtin_routes
from core.gateway import ConfirmationGateway
from core.pipeline import Context, Pipeline
from core.two_factor import TwoFactorManager
from core.users import UserDirectory

# Importing commands triggers @command decorators → populates the registry
import core.commands  # noqa: F401

logger = logging.getLogger(__name__)


class Router:
    """Route incoming messages through a middleware pipeline."""

    def __init__(
        self,
        auth: Auth,
        gateway: ConfirmationGateway,
        two_factor: TwoFactorManager,
        channel: BaseChannel,
        config: dict,
        routes: Optional[CommandRegistry] = None,
        users: Optional[UserDirectory] = None,
    ) -> None:
        self.auth = auth
        self.gateway = gateway
        self.two_factor = two_factor
        self.channel = channel
        self.config = config
        self.users = users or UserDirectory()

        self.routes = CommandRegistry()
        self.routes.extend(builtin_routes)
        if routes is not None:
            self.routes.extend(routes)

        self.pipeline = self._build_pipeline()

    # ── Pipeline construction ──────────────────────────────────

    def _build_pipeline(self) -> Pipeline:
        from core.middlewares.logging_mw import logging_middleware
        from core.middlewares.command_parser import command_parser_middleware

        return Pipeline(
            [
                logging_middleware,
                command_parser_middleware,
            ]
        )

    # ── Public entry point ─────────────────────────────────────

    async def handle_message(self, message: IncomingMessage) -> None:
        """Handle one normalized incoming message."""
        self.users.remember(
            message.user_id,
            name=message.sender_display_name,
            mention_name=message.sender_username,
        )
        ctx = Context(
            message=message,
            channel_name=message.channel,
            user_id=str(message.user_id),
            router=self,
            auth=self.auth,
            users=self.users,
            routes=self.routes,
            gateway=self.gateway,
            two_factor=self.two_factor,
            channel=self.channel,
            config=self.config,
        )
        try:
            await self.pipeline.execute(ctx)
        except Exception:
            logger.error("Unhandled error processing message from user=%s", message.user_id, exc_info=True)
            try:
                await self.channel.send_text(message.chat_id, "❌ Internal error, please try again later")
            except Exception:
                pass  # channel itself might be broken

    # ── Helpers (used by middlewares and commands) ──────────────

    @staticmethod
    def _fmt(channel: str, text: str) -> str:
        """Convert lightweight HTML markup to channel-appropriate format."""
        t = text
        t = re.sub(r"<b>(.*?)</b>", r"**\1**", t)
        t = re.sub(r"<code>(.*?)</code>", r"`\1`", t)
        t = t.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
        return t

    async def _reply(self, message: IncomingMessage, text: str) -> None:
        """Send a formatted reply, auto-converting markup for the channel."""
        await self.channel.send_text(message.chat_id, self._fmt(message.channel, text))
