"""Confirmation gateway: defers guarded routes behind a code and optional TOTP.

Decision on a guarded invocation with policy P for requester R:

* P is ``require`` and R is not enrolled: rejected, nothing is queued.
* P is ``block``, or ``allow`` with R not enrolled: queued, plain
  ``confirm <code>`` runs it.
* P is ``allow``/``require`` with R enrolled: queued, ``confirm <code> <otp>``
  runs it.
"""

from __future__ import annotations

import enum
import json
import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Optional

from core.auth import Auth
from core.confirmation import ConfirmOutcome, DeferredAction, PendingCommand, PendingCommandRegistry
from core.policy import TwoFactorPolicy, parse_policy
from core.two_factor import TwoFactorManager
from utils.helpers import mask_code

if TYPE_CHECKING:
    from core.command_registry import CommandSpec
    from core.pipeline import Context

logger = logging.getLogger(__name__)


MESSAGES = {
    "twofactor_required": (
        "⚠️ <code>{route}</code> requires two-factor confirmation, but you have not set up "
        "two-factor authentication. Enroll first with <code>confirm 2fa enroll</code>."
    ),
    "confirm_prompt": (
        "🔐 Confirmation code {code} issued for <code>{route}</code>.\n"
        "To run it, send: <code>confirm {code}</code>\n"
        "The code expires in {ttl} seconds."
    ),
    "confirm_totp_prompt": (
        "🔐 Confirmation code {code} issued for <code>{route}</code>.\n"
        "To run it, send: <code>confirm {code} YOUR_ONE_TIME_PASSWORD</code>\n"
        "The code expires in {ttl} seconds."
    ),
    "invalid_code": "❌ {code} is not a valid confirmation code. It may have expired or already been used.",
    "totp_not_provided": (
        "⚠️ This command requires a one-time password in addition to the command code. "
        "Send: <code>confirm {code} YOUR_ONE_TIME_PASSWORD</code>"
    ),
    "totp_not_enrolled": (
        "⚠️ Please enroll in two-factor confirmation before confirming with a one-time password: "
        "<code>confirm 2fa enroll</code>"
    ),
    "totp_incorrect_otp": (
        "❌ The one-time password you have provided is not correct. Code {code} is still pending."
    ),
    "other_user_required": "⚠️ Command {code} must be confirmed by a different user.",
    "user_in_group_required": "⚠️ Command {code} must be confirmed by a member of: {groups}",
}


class GatewayState(str, enum.Enum):
    DIRECT = "direct"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_TOTP_CONFIRMATION = "awaiting_totp_confirmation"
    REJECTED = "rejected"


class ConfirmationGateway:
    """Owns the pending-command registry for one process."""

    def __init__(
        self,
        registry: PendingCommandRegistry,
        two_factor: TwoFactorManager,
        auth: Auth,
        default_policy: str = "block",
        audit_logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.two_factor = two_factor
        self.auth = auth
        self.default_policy = parse_policy(default_policy, "twofactor_default")
        self.audit_logger = audit_logger
        self._clock = clock

    # ── helpers ────────────────────────────────────────────────

    def policy_for(self, spec: "CommandSpec") -> TwoFactorPolicy:
        return spec.confirmation.resolve(self.default_policy)

    def _audit(self, ctx: "Context", event: str, code: str = "", route: str = "", result: str = "") -> None:
        if self.audit_logger is None:
            return
        entry = {
            "ts": time.time(),
            "event": event,
            "channel": ctx.message.channel,
            "chat_id": ctx.message.chat_id,
            "user_id": ctx.user_id,
            "route": route,
            "code": mask_code(code) if code else "",
            "result": result,
        }
        self.audit_logger.info(json.dumps(entry, ensure_ascii=False, sort_keys=True))

    @staticmethod
    def _deferred(ctx: "Context", spec: "CommandSpec") -> DeferredAction:
        original = replace(ctx)
        handler = spec.handler

        async def _run(confirmer: str) -> None:
            await handler(replace(original, confirmed_by=confirmer))

        return _run

    # ── interception ───────────────────────────────────────────

    async def intercept(self, ctx: "Context", spec: "CommandSpec") -> GatewayState:
        """Run, queue or reject an invocation of *spec* by ``ctx.user_id``."""
        if spec.confirmation is None:
            await spec.handler(ctx)
            return GatewayState.DIRECT

        policy = self.policy_for(spec)
        enrolled = self.two_factor.is_enrolled(ctx.user_id)

        if policy is TwoFactorPolicy.REQUIRE and not enrolled:
            logger.warning("Rejected %s for user=%s: two-factor enrollment required", spec.name, ctx.user_id)
            self._audit(ctx, "rejected", route=spec.name, result="twofactor_required")
            await ctx.reply(MESSAGES["twofactor_required"].format(route=spec.name))
            return GatewayState.REJECTED

        twofactor = enrolled and policy is not TwoFactorPolicy.BLOCK
        pending = self.registry.create(
            ctx.user_id,
            policy,
            spec.confirmation.constraints,
            self._deferred(ctx, spec),
            twofactor=twofactor,
            route_name=spec.name,
        )
        self._audit(ctx, "pending", code=pending.code, route=spec.name, result=policy.value)
        key = "confirm_totp_prompt" if twofactor else "confirm_prompt"
        await ctx.reply(MESSAGES[key].format(code=pending.code, route=spec.name, ttl=self.registry.ttl_seconds))
        if twofactor:
            return GatewayState.AWAITING_TOTP_CONFIRMATION
        return GatewayState.AWAITING_CONFIRMATION

    # ── confirmation ───────────────────────────────────────────

    async def _consume(self, ctx: "Context", code: str, pending: PendingCommand) -> str:
        result = await self.registry.consume(code, ctx.user_id, self.auth.user_in_group)
        outcome = result.outcome
        self._audit(ctx, "confirm", code=code, route=pending.route_name, result=outcome.value)
        if outcome is ConfirmOutcome.NOT_FOUND:
            await ctx.reply(MESSAGES["invalid_code"].format(code=code))
            return "invalid_code"
        if outcome is ConfirmOutcome.OTHER_USER_REQUIRED:
            await ctx.reply(MESSAGES["other_user_required"].format(code=code))
        elif outcome is ConfirmOutcome.GROUP_REQUIRED:
            await ctx.reply(MESSAGES["user_in_group_required"].format(code=code, groups=", ".join(result.groups)))
        return outcome.value

    async def confirm(self, ctx: "Context", code: str) -> str:
        """Handle ``confirm <code>``; returns the reason key of the outcome."""
        code = code.lower()
        pending = self.registry.find(code)
        if pending is None:
            await ctx.reply(MESSAGES["invalid_code"].format(code=code))
            return "invalid_code"
        if pending.twofactor:
            await ctx.reply(MESSAGES["totp_not_provided"].format(code=code))
            return "totp_not_provided"
        return await self._consume(ctx, code, pending)

    async def totp_confirm(self, ctx: "Context", code: str, otp: str) -> str:
        """Handle ``confirm <code> <otp>``, checking the confirmer's own secret."""
        code = code.lower()
        pending = self.registry.find(code)
        if pending is None:
            await ctx.reply(MESSAGES["invalid_code"].format(code=code))
            return "invalid_code"

        secret = self.two_factor.secret_for(ctx.user_id)
        if not secret:
            await ctx.reply(MESSAGES["totp_not_enrolled"])
            return "totp_not_enrolled"

        # An OTP on a command that never needed one is accepted as-is.
        verified = self.two_factor.engine.verify(secret, otp, at_time=self._clock())
        if not verified and pending.twofactor:
            logger.warning("Incorrect OTP from user=%s for pending %s", ctx.user_id, mask_code(code))
            self._audit(ctx, "confirm", code=code, route=pending.route_name, result="totp_incorrect_otp")
            await ctx.reply(MESSAGES["totp_incorrect_otp"].format(code=code))
            return "totp_incorrect_otp"
        return await self._consume(ctx, code, pending)
