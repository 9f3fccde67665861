"""Directory of chat users seen by the gateway, for mention lookups."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from utils.helpers import normalize_mention

logger = logging.getLogger(__name__)


@dataclass
class User:
    user_id: str
    name: str
    mention_name: str


class UserDirectory:
    """In-memory user records keyed by id, indexed by mention name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: Dict[str, User] = {}
        self._by_mention: Dict[str, str] = {}

    def remember(self, user_id: str, name: Optional[str] = None, mention_name: Optional[str] = None) -> User:
        """Create or refresh a user record from an incoming message."""
        uid = str(user_id)
        with self._lock:
            current = self._by_id.get(uid)
            display = (name or (current.name if current else "") or uid).strip()
            mention = normalize_mention(mention_name or (current.mention_name if current else "") or display)
            if current and current.mention_name != mention and self._by_mention.get(current.mention_name) == uid:
                self._by_mention.pop(current.mention_name, None)
            user = User(user_id=uid, name=display, mention_name=mention)
            self._by_id[uid] = user
            self._by_mention[mention] = uid
        return user

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._by_id.get(str(user_id))

    def find_by_mention(self, mention: str) -> Optional[User]:
        """Resolve ``@name``, ``name`` or a raw user id to a known user."""
        key = normalize_mention(mention)
        if not key:
            return None
        raw_id = mention.strip().strip("<>").lstrip("@")
        with self._lock:
            uid = self._by_mention.get(key)
            if uid is None and raw_id in self._by_id:
                uid = raw_id
            return self._by_id.get(uid) if uid is not None else None
