"""Registry of deferred commands awaiting a confirmation code."""

from __future__ import annotations

import asyncio
import enum
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from core.policy import RequireDifferentUser, RequireGroup, TwoFactorPolicy
from utils.constants import CONFIRM_CODE_BYTES, DEFAULT_PENDING_TTL_SECONDS, MAX_CODE_DRAWS
from utils.helpers import mask_code

logger = logging.getLogger(__name__)

# Deferred action signature: async def action(confirmer_id: str) -> None
DeferredAction = Callable[[str], Awaitable[None]]
GroupCheck = Callable[[str, str], bool]


class ConfirmOutcome(str, enum.Enum):
    EXECUTED = "executed"
    NOT_FOUND = "not_found"
    OTHER_USER_REQUIRED = "other_user_required"
    GROUP_REQUIRED = "group_required"


@dataclass(frozen=True)
class PendingCommand:
    """One deferred invocation. Never mutated; removed on confirm or expiry."""

    code: str
    policy: TwoFactorPolicy
    requester: str
    action: DeferredAction
    created_at: float
    expires_at: float
    twofactor: bool = False
    constraints: Tuple[object, ...] = field(default_factory=tuple)
    route_name: str = ""

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class ConfirmResult:
    outcome: ConfirmOutcome
    command: Optional[PendingCommand] = None
    groups: Tuple[str, ...] = ()


class PendingCommandRegistry:
    """Thread-safe store of pending commands keyed by confirmation code.

    Every lookup, insert and removal happens under one lock, so a code can
    only be consumed once even when two confirmations race.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_PENDING_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = max(1, int(ttl_seconds))
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingCommand] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.find(code) is not None

    @staticmethod
    def _new_code() -> str:
        return secrets.token_hex(CONFIRM_CODE_BYTES)

    def _live(self, code: str, now: float) -> Optional[PendingCommand]:
        # Caller holds the lock.
        item = self._pending.get(code)
        if item is None:
            return None
        if item.is_expired(now):
            self._pending.pop(code, None)
            logger.debug("Expired pending command %s dropped", mask_code(code))
            return None
        return item

    def create(
        self,
        requester: str,
        policy: TwoFactorPolicy,
        constraints: Tuple[object, ...],
        action: DeferredAction,
        twofactor: bool = False,
        route_name: str = "",
    ) -> PendingCommand:
        now = self._clock()
        with self._lock:
            for _ in range(MAX_CODE_DRAWS):
                code = self._new_code()
                if self._live(code, now) is None:
                    break
            else:
                raise RuntimeError("Unable to allocate a free confirmation code")
            item = PendingCommand(
                code=code,
                policy=policy,
                requester=str(requester),
                action=action,
                created_at=now,
                expires_at=now + self.ttl_seconds,
                twofactor=bool(twofactor),
                constraints=tuple(constraints or ()),
                route_name=route_name,
            )
            self._pending[code] = item
        logger.info(
            "Pending command %s created for user=%s route=%s twofactor=%s",
            mask_code(code),
            requester,
            route_name or "-",
            item.twofactor,
        )
        return item

    def find(self, code: str) -> Optional[PendingCommand]:
        """Return the live entry for *code*; expired and unknown are both None."""
        now = self._clock()
        with self._lock:
            return self._live(str(code or "").lower(), now)

    def _check_constraints(
        self, item: PendingCommand, confirmer: str, in_group: Optional[GroupCheck]
    ) -> Optional[ConfirmResult]:
        for constraint in item.constraints:
            if isinstance(constraint, RequireDifferentUser) and confirmer == item.requester:
                return ConfirmResult(ConfirmOutcome.OTHER_USER_REQUIRED, item)
            if isinstance(constraint, RequireGroup):
                allowed = in_group is not None and any(in_group(confirmer, g) for g in constraint.groups)
                if not allowed:
                    return ConfirmResult(ConfirmOutcome.GROUP_REQUIRED, item, constraint.groups)
        return None

    async def consume(
        self,
        code: str,
        confirmer: str,
        in_group: Optional[GroupCheck] = None,
    ) -> ConfirmResult:
        """Check constraints for *confirmer*, then remove and run the action.

        Lookup, constraint check and removal are one locked step; the action is
        awaited only after the entry is gone.
        """
        key = str(code or "").lower()
        confirmer = str(confirmer)
        now = self._clock()
        with self._lock:
            item = self._live(key, now)
            if item is None:
                return ConfirmResult(ConfirmOutcome.NOT_FOUND)
            rejected = self._check_constraints(item, confirmer, in_group)
            if rejected is not None:
                logger.info(
                    "Pending command %s not confirmed by user=%s: %s",
                    mask_code(key),
                    confirmer,
                    rejected.outcome.value,
                )
                return rejected
            self._pending.pop(key, None)

        logger.info(
            "Pending command %s confirmed by user=%s (requested by %s)",
            mask_code(key),
            confirmer,
            item.requester,
        )
        await item.action(confirmer)
        return ConfirmResult(ConfirmOutcome.EXECUTED, item)

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [code for code, item in self._pending.items() if item.is_expired(now)]
            for code in stale:
                self._pending.pop(code, None)
        if stale:
            logger.debug("Swept %d expired pending command(s)", len(stale))
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._pending.clear()

    async def run_sweeper(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        """Periodically sweep until *stop_event* is set."""
        interval = max(1.0, float(interval_seconds))
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.sweep()
