"""TOTP second factor: code verification plus enrollment and removal."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import pyotp

from core.secret_store import SecretStore, SecretStoreError
from utils.constants import DEFAULT_ISSUER, DEFAULT_TOTP_VALID_WINDOW, TOTP_DIGITS, TOTP_PERIOD_SECONDS


logger = logging.getLogger(__name__)


class TotpEngine:
    """Thin wrapper over pyotp with the gateway's digit/period/window settings.

    ``valid_window=0`` accepts only the current 30-second step; raise it to
    tolerate clock skew of that many steps in each direction.
    """

    def __init__(
        self,
        valid_window: int = DEFAULT_TOTP_VALID_WINDOW,
        period_seconds: int = TOTP_PERIOD_SECONDS,
        digits: int = TOTP_DIGITS,
    ):
        self.valid_window = max(0, int(valid_window))
        self.period_seconds = int(period_seconds)
        self.digits = int(digits)

    @staticmethod
    def generate_secret() -> str:
        """Generate a base32 secret suitable for Google Authenticator."""
        return pyotp.random_base32()

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=self.digits, interval=self.period_seconds)

    def verify(self, secret: str, code: str, at_time: Optional[float] = None) -> bool:
        value = (code or "").strip()
        if not value.isdigit() or len(value) != self.digits:
            return False
        when = time.time() if at_time is None else at_time
        try:
            return bool(self._totp(secret).verify(value, for_time=int(when), valid_window=self.valid_window))
        except (TypeError, ValueError):
            logger.warning("Stored TOTP secret is malformed; verification refused")
            return False

    def provisioning_uri(self, secret: str, account_name: str, issuer: str = DEFAULT_ISSUER) -> str:
        account_value = str(account_name or "").strip()
        if not account_value:
            raise ValueError("account_name is required")
        return self._totp(secret).provisioning_uri(name=account_value, issuer_name=issuer)


@dataclass
class EnrollResult:
    ok: bool
    reason: str
    secret: Optional[str] = None
    otpauth_uri: Optional[str] = None


class TwoFactorManager:
    """Enrollment and removal of per-user TOTP secrets.

    In ``secure`` mode a user cannot rotate an existing secret and only a
    privileged user can remove one, so whoever controls a chat account cannot
    strip or replace the second factor on their own.
    """

    def __init__(
        self,
        store: SecretStore,
        engine: Optional[TotpEngine] = None,
        secure: bool = True,
        issuer: str = DEFAULT_ISSUER,
    ):
        self.store = store
        self.engine = engine or TotpEngine()
        self.secure = bool(secure)
        self.issuer = str(issuer or DEFAULT_ISSUER).strip() or DEFAULT_ISSUER

    def secret_for(self, user_id: str) -> Optional[str]:
        try:
            return self.store.get(str(user_id))
        except SecretStoreError as e:
            logger.warning("Secret store unavailable for user %s: %s", user_id, e)
            return None

    def is_enrolled(self, user_id: str) -> bool:
        return bool(self.secret_for(user_id))

    def enroll(self, user_id: str, account_name: Optional[str] = None) -> EnrollResult:
        uid = str(user_id)
        try:
            existing = self.store.get(uid)
        except SecretStoreError as e:
            logger.warning("Secret store unavailable during enrollment of %s: %s", uid, e)
            return EnrollResult(False, "store_unavailable")
        if existing and self.secure:
            logger.warning("Refused re-enrollment for user %s (secure mode)", uid)
            return EnrollResult(False, "must_remove_to_reenroll")

        secret = self.engine.generate_secret()
        try:
            self.store.set(uid, secret)
        except SecretStoreError as e:
            logger.warning("Failed to store secret for user %s: %s", uid, e)
            return EnrollResult(False, "store_unavailable")
        logger.info("User %s enrolled in two-factor confirmation (rotated=%s)", uid, bool(existing))
        uri = self.engine.provisioning_uri(secret, account_name or uid, issuer=self.issuer)
        return EnrollResult(True, "enrolled", secret=secret, otpauth_uri=uri)

    def _delete(self, user_id: str) -> Tuple[bool, str]:
        try:
            self.store.delete(str(user_id))
        except SecretStoreError as e:
            logger.warning("Failed to remove secret for user %s: %s", user_id, e)
            return False, "store_unavailable"
        return True, "removed"

    def remove_self(self, user_id: str, privileged: bool = False) -> Tuple[bool, str]:
        if self.secure and not privileged:
            logger.warning("Refused self-removal for non-privileged user %s (secure mode)", user_id)
            return False, "remove_requires_admin"
        ok, reason = self._delete(user_id)
        if ok:
            logger.info("User %s removed their two-factor enrollment", user_id)
        return ok, reason

    def remove_user(self, target_id: str, privileged: bool) -> Tuple[bool, str]:
        if not privileged:
            return False, "remove_requires_admin"
        ok, reason = self._delete(target_id)
        if ok:
            logger.info("Two-factor enrollment removed for user %s", target_id)
        return ok, reason

    def status(self, user_id: str) -> Dict[str, object]:
        return {
            "enrolled": self.is_enrolled(user_id),
            "secure": self.secure,
            "issuer": self.issuer,
            "valid_window": self.engine.valid_window,
        }
