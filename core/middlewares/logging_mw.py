"""Logging middleware — records request arrival and processing time."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, TYPE_CHECKING

from utils.constants import CONFIRM_CODE_RE

if TYPE_CHECKING:
    from core.pipeline import Context

logger = logging.getLogger(__name__)


def _preview(text: str) -> str:
    # One-time passwords never reach the log.
    parts = (text or "").split()
    if len(parts) == 3 and parts[0].lower() == "confirm" and CONFIRM_CODE_RE.match(parts[1].lower()):
        parts[2] = "******"
    return " ".join(parts)[:60]


async def logging_middleware(ctx: "Context", next: Callable[[], Awaitable[None]]) -> None:
    logger.info(
        "Message from user=%s channel=%s: %s",
        ctx.user_id,
        ctx.channel_name,
        _preview(ctx.message.text),
    )
    start = time.time()
    try:
        await next()
    finally:
        elapsed = time.time() - start
        logger.info(
            "Processed user=%s in %.2fs response_len=%d",
            ctx.user_id,
            elapsed,
            len(ctx.response),
        )
