"""Command parser middleware — matches routes and hands them to the gateway."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from core.pipeline import Context

logger = logging.getLogger(__name__)


async def command_parser_middleware(ctx: "Context", next: Callable[[], Awaitable[None]]) -> None:
    text = (ctx.message.text or "").strip()
    found = ctx.routes.match(text)
    if found is None:
        logger.debug("No route matched message from user=%s", ctx.user_id)
        await next()
        return

    spec, match = found
    ctx.matches = tuple(match.groups())
    ctx.route_name = spec.name
    state = await ctx.gateway.intercept(ctx, spec)
    logger.info("Route %s for user=%s -> %s", spec.name, ctx.user_id, state.value)
