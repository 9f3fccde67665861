"""Per-route confirmation policy declarations and their validation.

A route opts into confirmation by declaring ``confirmation=...`` when it is
registered. The declaration is validated immediately so that a typo fails
startup instead of silently falling back at the first invocation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

_ALLOWED_OPTIONS = ("twofactor", "other_user", "groups")


class ConfigurationError(ValueError):
    """Invalid confirmation configuration. Fatal at registration/startup."""


class TwoFactorPolicy(str, enum.Enum):
    BLOCK = "block"  # never use 2FA for this route
    ALLOW = "allow"  # use 2FA when the invoker is enrolled
    REQUIRE = "require"  # refuse unless the invoker is enrolled


@dataclass(frozen=True)
class RequireDifferentUser:
    """The confirmer must not be the user who issued the command."""


@dataclass(frozen=True)
class RequireGroup:
    """The confirmer must belong to at least one of ``groups``."""

    groups: Tuple[str, ...]


@dataclass(frozen=True)
class ConfirmationPolicy:
    """Validated confirmation declaration for one route.

    ``twofactor`` is ``None`` when the route did not name a policy; the gateway
    then applies its configured default.
    """

    twofactor: Optional[TwoFactorPolicy] = None
    constraints: Tuple[object, ...] = field(default_factory=tuple)

    def resolve(self, default: TwoFactorPolicy) -> TwoFactorPolicy:
        return self.twofactor if self.twofactor is not None else default

    @property
    def other_user(self) -> bool:
        return any(isinstance(c, RequireDifferentUser) for c in self.constraints)

    @property
    def groups(self) -> Tuple[str, ...]:
        for c in self.constraints:
            if isinstance(c, RequireGroup):
                return c.groups
        return ()


def parse_policy(value: Any, option: str = "twofactor", route_name: Optional[str] = None) -> TwoFactorPolicy:
    """Validate one policy literal (case-sensitive)."""
    for policy in TwoFactorPolicy:
        if isinstance(value, str) and value == policy.value:
            return policy
    where = f" (route {route_name})" if route_name else ""
    allowed = ", ".join(p.value for p in TwoFactorPolicy)
    raise ConfigurationError(
        f"{value!r} is not a valid value for Confirmation's {option} option{where}; "
        f"expected one of: {allowed}"
    )


def _parse_groups(value: Any, route_name: Optional[str]) -> Tuple[str, ...]:
    where = f" (route {route_name})" if route_name else ""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError(f"{value!r} is not a valid value for Confirmation's groups option{where}")
    groups = []
    for item in value:
        name = str(item).strip() if isinstance(item, str) else ""
        if not name:
            raise ConfigurationError(f"{item!r} is not a valid group name for Confirmation's groups option{where}")
        groups.append(name)
    return tuple(groups)


def parse_confirmation(options: Any, route_name: Optional[str] = None) -> Optional[ConfirmationPolicy]:
    """Turn a route's ``confirmation`` declaration into a ConfirmationPolicy.

    ``None``/``False`` means the route is not guarded. ``True`` or an empty dict
    means guarded with the default policy and no extra constraints.
    """
    if options is None or options is False:
        return None
    if options is True:
        return ConfirmationPolicy()

    where = f" (route {route_name})" if route_name else ""
    if not isinstance(options, dict):
        raise ConfigurationError(f"Confirmation options must be a mapping{where}, got {type(options).__name__}")

    unknown = sorted(str(k) for k in options if k not in _ALLOWED_OPTIONS)
    if unknown:
        raise ConfigurationError(f"Unknown Confirmation option(s){where}: {', '.join(unknown)}")

    twofactor = None
    if options.get("twofactor") is not None:
        twofactor = parse_policy(options["twofactor"], "twofactor", route_name)

    constraints = []
    other_user = options.get("other_user", False)
    if not isinstance(other_user, bool):
        raise ConfigurationError(f"{other_user!r} is not a valid value for Confirmation's other_user option{where}")
    if other_user:
        constraints.append(RequireDifferentUser())
    if options.get("groups") is not None:
        constraints.append(RequireGroup(_parse_groups(options["groups"], route_name)))

    return ConfirmationPolicy(twofactor=twofactor, constraints=tuple(constraints))
