"""Tests for core/policy.py — confirmation declarations."""

import pytest

from core.command_registry import CommandRegistry
from core.policy import (
    ConfigurationError,
    ConfirmationPolicy,
    RequireDifferentUser,
    RequireGroup,
    TwoFactorPolicy,
    parse_confirmation,
    parse_policy,
)


async def _noop(ctx):
    pass


class TestParsePolicy:

    @pytest.mark.parametrize("literal", ["block", "allow", "require"])
    def test_valid_literals(self, literal):
        assert parse_policy(literal) is TwoFactorPolicy(literal)

    @pytest.mark.parametrize("literal", ["foobar", "Block", "REQUIRE", "", None, 1])
    def test_invalid_literals_name_the_option(self, literal):
        with pytest.raises(ConfigurationError, match="not a valid value for Confirmation's twofactor option"):
            parse_policy(literal)


class TestParseConfirmation:

    def test_none_means_unguarded(self):
        assert parse_confirmation(None) is None
        assert parse_confirmation(False) is None

    def test_true_means_default_policy(self):
        policy = parse_confirmation(True)
        assert policy == ConfirmationPolicy()
        assert policy.resolve(TwoFactorPolicy.ALLOW) is TwoFactorPolicy.ALLOW

    def test_explicit_policy_wins_over_default(self):
        policy = parse_confirmation({"twofactor": "require"})
        assert policy.resolve(TwoFactorPolicy.BLOCK) is TwoFactorPolicy.REQUIRE

    def test_constraints(self):
        policy = parse_confirmation({"other_user": True, "groups": ["ops", "admin"]})
        assert RequireDifferentUser() in policy.constraints
        assert RequireGroup(("ops", "admin")) in policy.constraints
        assert policy.other_user is True
        assert policy.groups == ("ops", "admin")

    def test_single_group_string(self):
        assert parse_confirmation({"groups": "ops"}).groups == ("ops",)

    def test_invalid_twofactor_names_route(self):
        with pytest.raises(ConfigurationError, match="route invalid"):
            parse_confirmation({"twofactor": "foobar"}, route_name="invalid")

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError, match="twofactr"):
            parse_confirmation({"twofactr": "allow"})

    def test_bad_other_user(self):
        with pytest.raises(ConfigurationError, match="other_user"):
            parse_confirmation({"other_user": "yes"})

    @pytest.mark.parametrize("groups", [[], [""], [None], 5])
    def test_bad_groups(self, groups):
        with pytest.raises(ConfigurationError, match="groups"):
            parse_confirmation({"groups": groups})

    def test_non_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_confirmation("require")


class TestRouteRegistration:

    @pytest.mark.parametrize("literal", ["block", "allow", "require"])
    def test_valid_route_registers(self, literal):
        routes = CommandRegistry()
        spec = routes.route(r"^x$", _noop, name="x", confirmation={"twofactor": literal})
        assert spec.confirmation.twofactor is TwoFactorPolicy(literal)
        assert routes.list_all() == [spec]

    def test_invalid_route_fails_at_registration(self):
        routes = CommandRegistry()
        with pytest.raises(ConfigurationError, match="twofactor option"):
            routes.route(r"^invalid$", _noop, name="invalid", confirmation={"twofactor": "foobar"})
        assert routes.list_all() == []

    def test_match_is_case_insensitive_and_exposes_groups(self):
        routes = CommandRegistry()
        routes.route(r"^restart\s+(\S+)$", _noop, name="restart")
        spec, m = routes.match("  RESTART nginx ")
        assert spec.name == "restart"
        assert m.groups() == ("nginx",)
        assert routes.match("restart") is None

    def test_first_registered_route_wins_after_extend(self):
        builtin = CommandRegistry()
        builtin.route(r"^confirm\s+([a-f0-9]{6})$", _noop, name="confirm")
        merged = CommandRegistry()
        merged.extend(builtin)
        extra = CommandRegistry()
        extra.route(r"^confirm\s+.*$", _noop, name="aaa_catch_all")
        merged.extend(extra)
        spec, _ = merged.match("confirm abc123")
        assert spec.name == "confirm"
        assert merged.match("confirm later")[0].name == "aaa_catch_all"
