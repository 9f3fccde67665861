"""
Centralized constants for Confirm Gateway.

Collects literal command patterns, limits, and defaults shared between the
gateway core and the command handlers.
"""
import re

# ── Confirmation codes ──
CONFIRM_CODE_BYTES = 3  # token_hex(3) -> 6 lowercase hex chars
CONFIRM_CODE_RE = re.compile(r"^[a-f0-9]{6}$")
MAX_CODE_DRAWS = 64

# ── Pending command lifetime (seconds) ──
DEFAULT_PENDING_TTL_SECONDS = 300
DEFAULT_SWEEP_INTERVAL_SECONDS = 60

# ── TOTP ──
TOTP_DIGITS = 6
TOTP_PERIOD_SECONDS = 30
DEFAULT_TOTP_VALID_WINDOW = 0  # exact current window only
DEFAULT_ISSUER = "Confirm Gateway"

# ── Privilege groups allowed to administer other users' 2FA ──
PRIVILEGED_GROUPS = ("admin", "confirmation_admin")

# ── User-visible command surface (matched case-insensitively) ──
CONFIRM_PATTERN = r"^confirm\s+([a-f0-9]{6})$"
TOTP_CONFIRM_PATTERN = r"^confirm\s+([a-f0-9]{6})\s+([0-9]{6})$"
ENROLL_PATTERN = r"^confirm\s+2fa\s+enroll$"
REMOVE_SELF_PATTERN = r"^confirm\s+2fa\s+remove$"
REMOVE_USER_PATTERN = r"^confirm\s+2fa\s+remove\s+(\S+)$"
STATUS_PATTERN = r"^confirm\s+2fa\s+status$"
