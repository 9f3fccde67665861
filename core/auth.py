"""
Authorization module - named privilege groups used by confirmation rules
"""
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from utils.constants import PRIVILEGED_GROUPS

logger = logging.getLogger(__name__)


class Auth:
    """Group membership lookup, optionally merged with a JSON state file.

    Group names are case-sensitive; user identifiers are stored as strings so
    numeric chat IDs and textual handles can be mixed.
    """

    def __init__(
        self,
        groups: Optional[Dict[str, List[str]]] = None,
        admin_users: Optional[List[str]] = None,
        state_file: Optional[str] = None,
    ):
        """
        Args:
            groups: Mapping of group name -> list of member user identifiers.
                    e.g. {"ops": ["286194552"], "confirmation_admin": ["42"]}
            admin_users: Shorthand for members of the ``admin`` group
            state_file: Optional JSON file whose ``groups`` replace configured ones
        """
        self._groups: Dict[str, Set[str]] = {}
        for name, users in (groups or {}).items():
            self._groups[str(name)] = set(str(u) for u in (users or []))
        if admin_users:
            self._groups.setdefault("admin", set()).update(str(a) for a in admin_users)

        self.state_file = Path(state_file) if state_file else None
        self._load_state()

        total = sum(len(v) for v in self._groups.values())
        logger.info(
            "Auth initialized: %d group(s), %d total membership entries",
            len(self._groups),
            total,
        )

    def user_in_group(self, user_id: str, group: str) -> bool:
        return str(user_id) in self._groups.get(str(group), ())

    def is_privileged(self, user_id: str, groups: Iterable[str] = PRIVILEGED_GROUPS) -> bool:
        """True if the user may administer other users' two-factor enrollment."""
        return any(self.user_in_group(user_id, g) for g in groups)

    def groups_for(self, user_id: str) -> List[str]:
        uid = str(user_id)
        return sorted(name for name, members in self._groups.items() if uid in members)

    def _load_state(self) -> None:
        if not self.state_file or not self.state_file.exists():
            return
        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
            groups = data.get("groups")
            if isinstance(groups, dict):
                for name, users in groups.items():
                    if isinstance(users, list):
                        self._groups[str(name)] = set(str(u) for u in users)
            logger.info("Loaded group membership from %s", self.state_file)
        except Exception as e:
            logger.warning("Failed to load auth state from %s: %s", self.state_file, e)
