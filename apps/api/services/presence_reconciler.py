"""
Presence Reconciler

Builds the team roster from presence snapshots broadcast by every member.

Merge rule: last write wins per member identity.
- Our own snapshot echoed back by the broker is ignored.
- A known member is overwritten in place (roster order is kept).
- An unknown member is appended.

There is no heartbeat. By default a member who goes away stays on the roster
with their last snapshot until they publish again. A staleness window can be
configured with PRESENCE_STALE_AFTER_S; stale members are hidden from
`roster()` but kept, so a fresh snapshot puts them back in their old slot.
"""
import logging
from typing import Dict, List, Optional

from core.config import settings
from schemas import Teammate

logger = logging.getLogger(__name__)


class PresenceReconciler:

    def __init__(self, local_user_id: str, stale_after_s: Optional[int] = None):
        self.local_user_id = local_user_id
        self.stale_after_s = settings.PRESENCE_STALE_AFTER_S if stale_after_s is None else stale_after_s
        self._members: Dict[str, Teammate] = {}

    def merge(self, snapshot: Teammate) -> bool:
        """Apply a snapshot. Returns False if it was ignored."""
        if snapshot.user_id == self.local_user_id:
            return False
        # dict keeps the original insertion slot on overwrite
        self._members[snapshot.user_id] = snapshot
        return True

    def roster(self, now_ms: Optional[int] = None) -> List[Teammate]:
        members = list(self._members.values())
        if not self.stale_after_s or now_ms is None:
            return members
        cutoff = now_ms - self.stale_after_s * 1000
        return [member for member in members if member.last_seen >= cutoff]

    def get(self, user_id: str) -> Optional[Teammate]:
        return self._members.get(user_id)

    def clear(self):
        self._members.clear()

    def __len__(self) -> int:
        return len(self._members)
