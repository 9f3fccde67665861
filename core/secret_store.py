"""Per-user TOTP secret storage."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger(__name__)


class SecretStoreError(RuntimeError):
    """The backing store could not be read or written."""


class SecretStore(ABC):
    """Key-value capability holding one TOTP secret per user id."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[str]:
        """Return the user's secret, or None when not enrolled."""

    @abstractmethod
    def set(self, user_id: str, secret: str) -> None:
        """Store (or overwrite) the user's secret."""

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        """Remove the user's secret; True if one existed."""


class MemorySecretStore(SecretStore):
    def __init__(self, secrets_by_user: Optional[Dict[str, str]] = None):
        self._lock = threading.Lock()
        self._secrets: Dict[str, str] = {
            str(k): str(v).strip()
            for k, v in (secrets_by_user or {}).items()
            if str(k).strip() and str(v).strip()
        }

    def get(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._secrets.get(str(user_id))

    def set(self, user_id: str, secret: str) -> None:
        with self._lock:
            self._secrets[str(user_id)] = str(secret)

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._secrets.pop(str(user_id), None) is not None


class JsonFileSecretStore(MemorySecretStore):
    """Secrets mirrored to a 0600 JSON file, rewritten atomically on change."""

    def __init__(self, state_file: str, secrets_by_user: Optional[Dict[str, str]] = None):
        super().__init__(secrets_by_user)
        self.state_file = Path(state_file)
        self._load_state()

    def set(self, user_id: str, secret: str) -> None:
        with self._lock:
            previous = self._secrets.get(str(user_id))
            self._secrets[str(user_id)] = str(secret)
            try:
                self._save_state()
            except SecretStoreError:
                if previous is None:
                    self._secrets.pop(str(user_id), None)
                else:
                    self._secrets[str(user_id)] = previous
                raise

    def delete(self, user_id: str) -> bool:
        with self._lock:
            previous = self._secrets.pop(str(user_id), None)
            if previous is None:
                return False
            try:
                self._save_state()
            except SecretStoreError:
                self._secrets[str(user_id)] = previous
                raise
            return True

    def _load_state(self) -> None:
        if not self.state_file.exists():
            return
        try:
            raw = json.loads(self.state_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SecretStoreError(f"Failed to load secret state from {self.state_file}: {e}") from e
        secrets_payload = raw.get("secrets", {}) if isinstance(raw, dict) else {}
        if not isinstance(secrets_payload, dict):
            logger.warning("Invalid secret state payload in %s: secrets must be an object", self.state_file)
            return
        for user_id, secret in secrets_payload.items():
            uid = str(user_id).strip()
            value = str(secret).strip()
            if not uid or not value:
                continue
            old = self._secrets.get(uid)
            if old and old != value:
                logger.warning("Overriding configured secret from state file for user %s", uid)
            self._secrets[uid] = value
        self._ensure_state_file_permissions()
        logger.info("Loaded %d enrolled user(s) from %s", len(self._secrets), self.state_file)

    def _ensure_state_file_permissions(self) -> None:
        if not self.state_file.exists():
            return
        try:
            os.chmod(self.state_file, 0o600)
        except OSError as e:
            logger.warning("Failed to chmod secret state file %s: %s", self.state_file, e)

    def _save_state(self) -> None:
        # Caller holds the lock.
        payload = {
            "version": 1,
            "updated_at": int(time.time()),
            "secrets": {uid: secret for uid, secret in sorted(self._secrets.items()) if secret},
        }
        tmp_path = None
        try:
            parent = self.state_file.parent
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".confirm_secrets.",
                suffix=".json",
                dir=str(parent),
            )
            try:
                os.fchmod(fd, 0o600)
            except (AttributeError, OSError):
                # Not all platforms/filesystems support fchmod.
                pass
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.state_file)
            self._ensure_state_file_permissions()
        except OSError as e:
            raise SecretStoreError(f"Failed to persist secret state to {self.state_file}: {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
