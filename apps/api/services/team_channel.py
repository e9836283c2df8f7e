"""
Team Channel

Owns one broker session scoped to a team code. Two sub-channels per team:

- team/{code}/presence  retained; the broker keeps the last snapshot and hands
                        it to anyone who subscribes later
- team/{code}/chat      plain fan-out, nothing retained

On every (re)connect the channel subscribes to both and immediately publishes
our own presence, so late joiners see us without waiting for a state change.

Inbound payloads are parsed into a small typed union (PresenceEvent |
ChatEvent) before they reach the reconcilers. A payload that fails to parse is
logged and dropped; the next message is processed normally.
"""
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from core.config import settings
from core.exceptions import InvalidTeamCodeError
from core.transport import ConnectOptions, Payload, PubSubTransport
from schemas import ChatMessage, Teammate

logger = logging.getLogger(__name__)

# No 0/O or 1/I, codes get read out loud and typed on phones
TEAM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TEAM_CODE_LENGTH = 6


def generate_team_code(length: int = TEAM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(TEAM_CODE_ALPHABET) for _ in range(length))


def normalize_team_code(code: str) -> str:
    """
    Case-normalize a join code and check its shape.

    Existence is not checked: a code nobody publishes on just gives an
    empty roster.
    """
    normalized = (code or "").strip().upper()
    if len(normalized) != TEAM_CODE_LENGTH:
        raise InvalidTeamCodeError(f"Team code must be {TEAM_CODE_LENGTH} characters, got {code!r}")
    if not (normalized.isascii() and normalized.isalnum()):
        raise InvalidTeamCodeError(f"Team code must be letters and digits only, got {code!r}")
    return normalized


def presence_topic(team_id: str) -> str:
    return f"team/{team_id}/presence"


def chat_topic(team_id: str) -> str:
    return f"team/{team_id}/chat"


@dataclass(frozen=True)
class PresenceEvent:
    snapshot: Teammate


@dataclass(frozen=True)
class ChatEvent:
    message: ChatMessage


InboundMessage = Union[PresenceEvent, ChatEvent]


def parse_inbound(topic: str, raw: Payload) -> InboundMessage:
    """
    Turn a raw broker delivery into a typed message.

    Raises ValueError (including json and pydantic errors) if the topic is
    unknown or the payload does not match its wire shape.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    data = json.loads(raw)
    if topic.endswith("/presence"):
        return PresenceEvent(Teammate.model_validate(data))
    if topic.endswith("/chat"):
        return ChatEvent(ChatMessage.model_validate(data))
    raise ValueError(f"Unknown topic: {topic}")


class TeamChannel:
    """
    Example usage:
        channel = TeamChannel(
            RedisPubSubTransport(), "AB12CD", user_id,
            presence_provider=engine.presence_snapshot,
            on_message=engine.handle_inbound,
        )
        channel.open()
        channel.pump()
    """

    def __init__(
        self,
        transport: PubSubTransport,
        team_id: str,
        user_id: str,
        *,
        presence_provider: Callable[[], Teammate],
        on_message: Callable[[InboundMessage], None],
        endpoint: Optional[str] = None,
        keep_alive_s: Optional[int] = None,
        clean_session: Optional[bool] = None,
        reconnect_interval_ms: Optional[int] = None,
        client_id_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.team_id = team_id
        self.user_id = user_id
        self.presence_provider = presence_provider
        self.on_message = on_message
        self.endpoint = endpoint or settings.BROKER_URL
        prefix = client_id_prefix or settings.CLIENT_ID_PREFIX
        # Unique per session so several tabs/devices of one user don't evict each other
        self.options = ConnectOptions(
            client_id=f"{prefix}_{user_id}_{int(clock() * 1000)}",
            keep_alive_s=keep_alive_s or settings.BROKER_KEEPALIVE_S,
            clean_session=settings.BROKER_CLEAN_SESSION if clean_session is None else clean_session,
            reconnect_interval_ms=reconnect_interval_ms or settings.BROKER_RECONNECT_INTERVAL_MS,
        )
        self.closed = False

    @property
    def connected(self) -> bool:
        return not self.closed and self.transport.connected

    def open(self):
        self.transport.on_connect = self._handle_connect
        self.transport.on_message = self._handle_message
        self.transport.connect(self.endpoint, self.options)

    def close(self):
        """End the session. In-flight publishes may be lost."""
        self.closed = True
        self.transport.on_connect = None
        self.transport.on_message = None
        self.transport.disconnect()

    def pump(self, timeout: float = 0.0) -> int:
        if self.closed:
            return 0
        return self.transport.pump(timeout)

    def publish_presence(self, snapshot: Optional[Teammate] = None) -> bool:
        if self.closed:
            return False
        snapshot = snapshot or self.presence_provider()
        return self.transport.publish(
            presence_topic(self.team_id), json.dumps(snapshot.to_wire()), retain=True
        )

    def publish_chat(self, message: ChatMessage) -> bool:
        if self.closed:
            return False
        return self.transport.publish(
            chat_topic(self.team_id), json.dumps(message.to_wire()), retain=False
        )

    def _handle_connect(self):
        logger.info(f"Joined team channel {self.team_id}")
        self.transport.subscribe(presence_topic(self.team_id))
        self.transport.subscribe(chat_topic(self.team_id))
        self.publish_presence()

    def _handle_message(self, topic: str, raw: Payload):
        if self.closed:
            return
        if topic not in (presence_topic(self.team_id), chat_topic(self.team_id)):
            logger.debug(f"Ignoring message for another topic: {topic}")
            return
        try:
            message = parse_inbound(topic, raw)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping malformed payload on {topic}: {e}")
            return
        self.on_message(message)
