"""Declarative route registration with the @command decorator."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Tuple, TYPE_CHECKING

from core.policy import ConfirmationPolicy, parse_confirmation

if TYPE_CHECKING:
    from core.pipeline import Context

logger = logging.getLogger(__name__)

# Handler signature: async def handler(ctx: Context) -> None
CommandHandler = Callable[["Context"], Awaitable[None]]


@dataclass
class CommandSpec:
    """Metadata for a registered route."""

    name: str  # e.g. "danger"
    pattern: Pattern[str]  # matched against the whole message text
    handler: CommandHandler
    description: str = ""  # e.g. "confirm <code> - run a pending command"
    confirmation: Optional[ConfirmationPolicy] = None

    @property
    def guarded(self) -> bool:
        return self.confirmation is not None


class CommandRegistry:
    """Ordered route table; the first matching pattern wins."""

    def __init__(self) -> None:
        self._routes: Dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec) -> None:
        if spec.name in self._routes:
            logger.warning("Route %s registered twice, overwriting", spec.name)
        self._routes[spec.name] = spec

    def route(
        self,
        pattern: str,
        handler: CommandHandler,
        name: Optional[str] = None,
        description: str = "",
        confirmation: Any = None,
    ) -> CommandSpec:
        """Register *handler* for messages matching *pattern*.

        The confirmation declaration is validated here, so an invalid policy
        raises ConfigurationError at registration rather than at first use.
        """
        route_name = name or handler.__name__
        spec = CommandSpec(
            name=route_name,
            pattern=re.compile(pattern, re.IGNORECASE),
            handler=handler,
            description=description,
            confirmation=parse_confirmation(confirmation, route_name),
        )
        self.register(spec)
        return spec

    def match(self, text: str) -> Optional[Tuple[CommandSpec, "re.Match[str]"]]:
        value = (text or "").strip()
        for spec in self._routes.values():
            m = spec.pattern.fullmatch(value)
            if m:
                return spec, m
        return None

    def list_all(self) -> List[CommandSpec]:
        return sorted(self._routes.values(), key=lambda s: s.name)

    def extend(self, other: "CommandRegistry") -> None:
        for spec in list(other._routes.values()):
            self.register(spec)


# ── Module-level registry used by the @command decorator ──
registry = CommandRegistry()


def command(pattern: str, description: str = "", name: Optional[str] = None, confirmation: Any = None):
    """Decorator that registers an async handler as a route.

    Usage::

        @command(r"^restart\\s+(\\S+)$", "restart <service>",
                 confirmation={"twofactor": "require"})
        async def handle_restart(ctx: Context) -> None:
            ...
    """

    def decorator(func: CommandHandler) -> CommandHandler:
        registry.route(pattern, func, name=name, description=description, confirmation=confirmation)
        return func

    return decorator
