"""Global fixtures for Confirm Gateway test suite."""

import re
from typing import List, Optional, Tuple

import pytest

from channels.base import BaseChannel, IncomingMessage
from core.auth import Auth
from core.command_registry import CommandRegistry
from core.confirmation import PendingCommandRegistry
from core.gateway import ConfirmationGateway
from core.secret_store import MemorySecretStore
from core.two_factor import TotpEngine, TwoFactorManager


CODE_RE = re.compile(r"Confirmation code ([a-f0-9]{6}) issued")


# ── FakeChannel ──


class FakeChannel(BaseChannel):
    """Test double that records all interactions."""

    supports_files = True

    def __init__(self):
        super().__init__({})
        self.sent: List[Tuple[str, str]] = []  # (chat_id, text)
        self.files_sent: List[Tuple[str, str, str]] = []  # (chat_id, filepath, caption)

    async def start(self):
        pass

    async def stop(self):
        pass

    async def send_text(self, chat_id: str, text: str):
        self.sent.append((chat_id, text))

    async def send_file(self, chat_id: str, filepath: str, caption: str = ""):
        self.files_sent.append((chat_id, filepath, caption))

    def last_sent_text(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None

    def last_code(self) -> Optional[str]:
        for _, text in reversed(self.sent):
            m = CODE_RE.search(text)
            if m:
                return m.group(1)
        return None


# ── Test routes ──


def build_test_routes(executed: list) -> CommandRegistry:
    """Routes mirroring a host application with sensitive commands."""
    routes = CommandRegistry()

    def _make(reply: str):
        async def _handler(ctx) -> None:
            executed.append((ctx.route_name, ctx.user_id, ctx.confirmed_by))
            await ctx.reply(reply)

        return _handler

    routes.route(r"^unimportant$", _make("Trivial command executed!"), name="unimportant",
                 description="unimportant", confirmation={"twofactor": "block"})
    routes.route(r"^danger$", _make("Important command executed!"), name="danger",
                 description="danger", confirmation={"twofactor": "allow"})
    routes.route(r"^critical$", _make("Critical command executed!"), name="critical",
                 description="critical", confirmation={"twofactor": "require"})
    routes.route(r"^dual$", _make("Dual control command executed!"), name="dual",
                 confirmation={"twofactor": "block", "other_user": True})
    routes.route(r"^deploy$", _make("Deploy executed!"), name="deploy",
                 confirmation={"twofactor": "block", "groups": ["ops"]})
    routes.route(r"^defaulted$", _make("Defaulted command executed!"), name="defaulted", confirmation=True)
    routes.route(r"^echo\s+(\S+)$", _make("echo"), name="echo", description="echo &lt;text&gt;")
    return routes


# ── Fixtures ──


@pytest.fixture
def auth(tmp_path):
    """Auth with admin 'admin1' and ops group member 'ops1'."""
    return Auth(
        groups={"ops": ["ops1"]},
        admin_users=["admin1"],
        state_file=str(tmp_path / "auth_state.json"),
    )


@pytest.fixture
def secret_store():
    return MemorySecretStore()


@pytest.fixture
def two_factor(secret_store):
    return TwoFactorManager(secret_store, TotpEngine(), secure=True)


@pytest.fixture
def pending_registry():
    return PendingCommandRegistry(ttl_seconds=300)


@pytest.fixture
def gateway(pending_registry, two_factor, auth):
    return ConfirmationGateway(pending_registry, two_factor, auth, default_policy="block")


@pytest.fixture
def executed():
    """(route, user_id, confirmed_by) for every test route that actually ran."""
    return []


@pytest.fixture
def test_routes(executed):
    return build_test_routes(executed)


@pytest.fixture
def fake_channel():
    """FakeChannel instance."""
    return FakeChannel()


@pytest.fixture
def make_message():
    """Factory to create IncomingMessage easily."""
    def _make(
        text: str = "hello",
        user_id: str = "123",
        chat_id: str = "chat_1",
        channel: str = "console",
        sender_username: str = None,
        sender_display_name: str = None,
    ) -> IncomingMessage:
        return IncomingMessage(
            channel=channel,
            chat_id=chat_id,
            user_id=user_id,
            text=text,
            is_private=True,
            sender_username=sender_username or user_id,
            sender_display_name=sender_display_name or user_id,
        )
    return _make


@pytest.fixture
def router(auth, gateway, two_factor, fake_channel, test_routes):
    """Router wired to in-memory components and the test routes."""
    from core.router import Router
    return Router(
        auth=auth,
        gateway=gateway,
        two_factor=two_factor,
        channel=fake_channel,
        config={},
        routes=test_routes,
    )


@pytest.fixture
def send(router, make_message):
    """Send one message through the router as *user_id* (default '123')."""
    async def _send(text: str, user_id: str = "123", **kwargs) -> None:
        await router.handle_message(make_message(text=text, user_id=user_id, **kwargs))
    return _send
