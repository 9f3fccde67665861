"""Middleware pipeline engine with request Context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Tuple

from channels.base import BaseChannel, IncomingMessage
from core.auth import Auth
from core.users import UserDirectory

if TYPE_CHECKING:
    from core.command_registry import CommandRegistry
    from core.gateway import ConfirmationGateway
    from core.two_factor import TwoFactorManager

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """Per-request context flowing through the middleware pipeline."""

    # ── Immutable request data ──
    message: IncomingMessage
    channel_name: str
    user_id: str

    # ── Component references (injected by Router) ──
    router: object  # Router instance — avoids circular import
    auth: Auth
    users: UserDirectory
    routes: "CommandRegistry"
    gateway: "ConfirmationGateway"
    two_factor: "TwoFactorManager"
    channel: BaseChannel
    config: dict

    # ── Mutable working state (set by middlewares) ──
    matches: Tuple[str, ...] = ()
    route_name: Optional[str] = None
    confirmed_by: Optional[str] = None  # set when a deferred command runs
    response: str = ""

    @property
    def user_name(self) -> str:
        user = self.users.find_by_id(self.user_id)
        return user.name if user else self.user_id

    async def reply(self, text: str) -> None:
        """Reply to the chat this message came from."""
        self.response = text
        await self.router._reply(self.message, text)


# Type alias for a middleware function
Middleware = Callable[[Context, Callable[[], Awaitable[None]]], Awaitable[None]]


class Pipeline:
    """Execute an ordered list of middlewares as an onion (nested) chain."""

    def __init__(self, middlewares: List[Middleware]) -> None:
        self.middlewares = middlewares

    async def execute(self, ctx: Context) -> None:
        """Run the middleware chain for *ctx*."""

        async def _noop() -> None:
            """Terminal handler — does nothing."""

        # Build nested closures from right to left so that
        # mw[0] wraps mw[1] wraps … wraps _noop.
        handler = _noop
        for mw in reversed(self.middlewares):
            # Capture *mw* and *handler* in the closure's default args
            # to avoid the classic late-binding issue.
            async def _wrap(ctx: Context, _mw=mw, _next=handler) -> None:
                await _mw(ctx, _next)

            handler = lambda _ctx=ctx, _w=_wrap: _w(_ctx)  # noqa: E731

        try:
            await handler()
        except Exception:
            logger.error("Pipeline error for user=%s", ctx.user_id, exc_info=True)
            raise
