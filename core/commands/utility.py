"""Utility commands: help, whoami."""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.command_registry import command

if TYPE_CHECKING:
    from core.pipeline import Context


@command(r"^help$", "help - list available commands", name="help")
async def handle_help(ctx: "Context") -> None:
    lines = ["📚 Available commands:", ""]
    for spec in ctx.routes.list_all():
        if not spec.description:
            continue
        marker = " 🔐" if spec.guarded else ""
        lines.append(f"• {spec.description}{marker}")
    lines.append("")
    lines.append("🔐 = needs a confirmation code before it runs")
    await ctx.reply("\n".join(lines))


@command(r"^whoami$", "whoami - show your identity and privileges", name="whoami")
async def handle_whoami(ctx: "Context") -> None:
    groups = ctx.auth.groups_for(ctx.user_id)
    await ctx.reply(
        "\n".join(
            [
                "🪪 Current identity",
                f"- user_id: <code>{ctx.user_id}</code>",
                f"- name: <code>{ctx.user_name}</code>",
                f"- groups: <code>{', '.join(groups) or '-'}</code>",
                f"- privileged: <code>{str(ctx.auth.is_privileged(ctx.user_id)).lower()}</code>",
                f"- 2fa_enrolled: <code>{str(ctx.two_factor.is_enrolled(ctx.user_id)).lower()}</code>",
            ]
        )
    )
