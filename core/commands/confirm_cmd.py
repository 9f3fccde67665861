"""Confirmation commands: confirm codes, enroll in and remove 2FA."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from typing import TYPE_CHECKING

import qrcode

from core.command_registry import command
from utils.constants import (
    CONFIRM_PATTERN,
    ENROLL_PATTERN,
    REMOVE_SELF_PATTERN,
    REMOVE_USER_PATTERN,
    STATUS_PATTERN,
    TOTP_CONFIRM_PATTERN,
)

if TYPE_CHECKING:
    from core.pipeline import Context

logger = logging.getLogger(__name__)


async def _send_qr_file(ctx: "Context", otpauth_uri: str) -> bool:
    if not getattr(ctx.channel, "supports_files", False):
        return False

    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix="confirm-2fa-", suffix=".png")
        os.close(fd)

        def _render() -> None:
            image = qrcode.make(otpauth_uri)
            image.save(tmp_path)

        await asyncio.to_thread(_render)
        await ctx.channel.send_file(
            ctx.message.chat_id,
            tmp_path,
            caption="🔐 Two-factor enrollment QR code",
        )
        return True
    except Exception as e:
        logger.warning("Failed to send enrollment QR code to user=%s: %s", ctx.user_id, e)
        return False
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


@command(CONFIRM_PATTERN, "confirm &lt;code&gt; - run a pending command", name="confirm")
async def handle_confirm(ctx: "Context") -> None:
    await ctx.gateway.confirm(ctx, ctx.matches[0])


@command(
    TOTP_CONFIRM_PATTERN,
    "confirm &lt;code&gt; &lt;otp&gt; - run a pending command with a one-time password",
    name="totp_confirm",
)
async def handle_totp_confirm(ctx: "Context") -> None:
    await ctx.gateway.totp_confirm(ctx, ctx.matches[0], ctx.matches[1])


@command(ENROLL_PATTERN, "confirm 2fa enroll - set up two-factor confirmation", name="enroll")
async def handle_enroll(ctx: "Context") -> None:
    result = ctx.two_factor.enroll(ctx.user_id, account_name=ctx.user_name)
    if not result.ok:
        if result.reason == "must_remove_to_reenroll":
            await ctx.reply(
                "⚠️ You are already enrolled. Ask an administrator to remove your current "
                "enrollment before enrolling again."
            )
        else:
            await ctx.reply(f"❌ Enrollment failed: <code>{result.reason}</code>")
        return

    qr_sent = await _send_qr_file(ctx, result.otpauth_uri or "")
    lines = [
        f"✅ Your secret code is {result.secret}",
        "Add it to an authenticator app; this is the only time it is shown.",
    ]
    if qr_sent:
        lines.append("A QR code has been sent as well.")
    else:
        lines.append(f"- otpauth: <code>{result.otpauth_uri}</code>")
    await ctx.reply("\n".join(lines))


@command(REMOVE_SELF_PATTERN, "confirm 2fa remove - stop using two-factor confirmation", name="remove_self")
async def handle_remove_self(ctx: "Context") -> None:
    ok, reason = ctx.two_factor.remove_self(ctx.user_id, privileged=ctx.auth.is_privileged(ctx.user_id))
    if ok:
        await ctx.reply("✅ You will no longer be prompted for a one-time password.")
    elif reason == "remove_requires_admin":
        await ctx.reply("⚠️ Only an administrator can remove two-factor enrollment.")
    else:
        await ctx.reply(f"❌ Removal failed: <code>{reason}</code>")


@command(
    REMOVE_USER_PATTERN,
    "confirm 2fa remove &lt;user&gt; - remove another user's enrollment (admin)",
    name="remove_user",
)
async def handle_remove_user(ctx: "Context") -> None:
    privileged = ctx.auth.is_privileged(ctx.user_id)
    if not privileged:
        await ctx.reply("⚠️ Only an administrator can remove two-factor enrollment.")
        return

    target = ctx.users.find_by_mention(ctx.matches[0])
    if target is None:
        await ctx.reply(f"❌ No such user: <code>{ctx.matches[0]}</code>")
        return

    ok, reason = ctx.two_factor.remove_user(target.user_id, privileged=privileged)
    if not ok:
        await ctx.reply(f"❌ Removal failed: <code>{reason}</code>")
        return
    await ctx.reply(f"✅ {target.name} will no longer be prompted for a one-time password.")


@command(STATUS_PATTERN, "confirm 2fa status - show your two-factor enrollment", name="twofactor_status")
async def handle_status(ctx: "Context") -> None:
    st = ctx.two_factor.status(ctx.user_id)
    await ctx.reply(
        "\n".join(
            [
                "ℹ️ Two-factor status",
                f"- enrolled: <code>{str(bool(st.get('enrolled'))).lower()}</code>",
                f"- secure: <code>{str(bool(st.get('secure'))).lower()}</code>",
                f"- issuer: <code>{st.get('issuer')}</code>",
            ]
        )
    )
