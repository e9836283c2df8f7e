"""
Repository: persistence for the local session state.

Maps the engine's in-memory model to three store keys:
- `{prefix}_user`  the UserProfile
- `{prefix}_logs`  the DailyLog list, submission order
- `{prefix}_chat`  the most recent chat window

Keep business rules out of this module. Reads happen once at start-up,
writes after every local mutation. A failed write is logged and swallowed:
the in-memory state stays authoritative until the next successful write.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from core.config import settings
from core.exceptions import StoreQuotaExceededError
from core.store import KeyValueStore
from schemas import UserProfile
from services.chat_reconciler import ChatReconciler
from services.log_store import LogStore

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    profile: Optional[UserProfile] = None
    logs: LogStore = field(default_factory=LogStore)
    chat: ChatReconciler = field(default_factory=ChatReconciler)


class SessionRepository:

    def __init__(self, store: KeyValueStore, prefix: Optional[str] = None, chat_limit: Optional[int] = None):
        self.store = store
        self.prefix = settings.STORE_KEY_PREFIX if prefix is None else prefix
        self.chat_limit = chat_limit

    @property
    def user_key(self) -> str:
        return f"{self.prefix}_user"

    @property
    def logs_key(self) -> str:
        return f"{self.prefix}_logs"

    @property
    def chat_key(self) -> str:
        return f"{self.prefix}_chat"

    def load(self) -> SessionSnapshot:
        """
        Read the persisted session.

        Each key is loaded independently; a corrupt entry is logged and
        replaced by its empty default rather than failing start-up.
        """
        snapshot = SessionSnapshot(chat=ChatReconciler(limit=self.chat_limit))

        try:
            raw_user = self.store.get(self.user_key)
            if raw_user:
                if not raw_user.get("userId"):
                    raw_user["userId"] = str(uuid.uuid4())
                snapshot.profile = UserProfile.model_validate(raw_user)
        except (ValidationError, ValueError, AttributeError, RedisError) as e:
            logger.error(f"Failed to load profile: {e}")

        try:
            snapshot.logs = LogStore.from_json(self.store.get(self.logs_key))
        except (ValidationError, ValueError, TypeError, RedisError) as e:
            logger.error(f"Failed to load logs: {e}")

        try:
            snapshot.chat = ChatReconciler.from_json(self.store.get(self.chat_key), limit=self.chat_limit)
        except (ValidationError, ValueError, TypeError, RedisError) as e:
            logger.error(f"Failed to load chat history: {e}")

        return snapshot

    def save(self, profile: Optional[UserProfile], logs: LogStore, chat: ChatReconciler) -> bool:
        """Write the session. Returns False (and logs) on failure."""
        try:
            if profile is not None:
                self.store.set(self.user_key, profile.to_wire())
            self.store.set(self.logs_key, logs.to_json())
            self.store.set(self.chat_key, chat.to_json())
            return True
        except StoreQuotaExceededError as e:
            logger.warning(f"Store quota exceeded, continuing with in-memory state: {e}")
        except (RedisError, TypeError, ValueError) as e:
            logger.warning(f"Storage failed, continuing with in-memory state: {e}")
        return False

    def clear(self):
        for key in (self.user_key, self.logs_key, self.chat_key):
            self.store.remove(key)
