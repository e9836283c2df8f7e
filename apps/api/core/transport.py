"""
Pub/Sub Transport

The team channel talks to a broker through this narrow interface:
connect / subscribe / publish / disconnect, plus two callbacks
(`on_connect`, `on_message`). Anything that honours it can be injected;
tests use an in-memory broker.

RedisPubSubTransport maps it onto Redis:
- publish        -> PUBLISH topic payload
- retained       -> SET retained:{topic} payload, then PUBLISH. Subscribing to a
                    topic immediately redelivers its retained payload, so the
                    last message on a retained topic reaches late joiners.
- keep-alive     -> redis health checks every keep_alive_s
- reconnect      -> on a connection error the transport drops to disconnected
                    and retries every reconnect_interval_ms from pump()

Nothing here blocks for long: pump() drains whatever is already waiting and
returns, so the caller's loop stays in control of when state changes happen.
Topics are literal channel names; wildcard subscriptions are not supported.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Set, Union

import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError

logger = logging.getLogger(__name__)

Payload = Union[str, bytes]
MessageHandler = Callable[[str, Payload], None]
ConnectHandler = Callable[[], None]


@dataclass(frozen=True)
class ConnectOptions:
    client_id: str
    keep_alive_s: int = 60
    clean_session: bool = True
    reconnect_interval_ms: int = 1000


class PubSubTransport(Protocol):
    on_message: Optional[MessageHandler]
    on_connect: Optional[ConnectHandler]

    @property
    def connected(self) -> bool: ...

    def connect(self, endpoint: str, options: ConnectOptions) -> None: ...

    def subscribe(self, topic: str) -> None: ...

    def publish(self, topic: str, payload: str, retain: bool = False) -> bool: ...

    def pump(self, timeout: float = 0.0) -> int: ...

    def disconnect(self) -> None: ...


def retained_key(topic: str) -> str:
    return f"retained:{topic}"


def _default_client_factory(endpoint: str, options: ConnectOptions) -> redis.Redis:
    return redis.from_url(
        endpoint,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
        socket_keepalive=True,
        health_check_interval=options.keep_alive_s,
        client_name=options.client_id,
    )


class RedisPubSubTransport:
    """Redis-backed transport with retained-message emulation and auto-reconnect."""

    def __init__(
        self,
        client_factory: Optional[Callable[[str, ConnectOptions], redis.Redis]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client_factory = client_factory or _default_client_factory
        self._clock = clock
        self.on_message: Optional[MessageHandler] = None
        self.on_connect: Optional[ConnectHandler] = None

        self._client: Optional[redis.Redis] = None
        self._pubsub = None
        self._endpoint: Optional[str] = None
        self._options: Optional[ConnectOptions] = None
        self._connected = False
        self._closed = False
        self._next_retry_at: Optional[float] = None
        self._topics: Set[str] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, endpoint: str, options: ConnectOptions) -> None:
        self._endpoint = endpoint
        self._options = options
        self._closed = False
        self._try_connect()

    def subscribe(self, topic: str) -> None:
        self._topics.add(topic)
        if not self._connected:
            return
        try:
            self._pubsub.subscribe(topic)
            retained = self._client.get(retained_key(topic))
        except (ConnectionError, TimeoutError) as e:
            self._handle_failure(e)
            return
        if retained is not None:
            self._deliver(topic, retained)

    def publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        if not self._connected:
            logger.warning(f"Broker not connected, dropping publish to {topic}")
            return False
        try:
            if retain:
                self._client.set(retained_key(topic), payload)
            self._client.publish(topic, payload)
            return True
        except (ConnectionError, TimeoutError) as e:
            self._handle_failure(e)
            return False

    def pump(self, timeout: float = 0.0) -> int:
        """Deliver pending inbound messages; retry the connection when due."""
        if self._closed:
            return 0
        if not self._connected:
            if self._next_retry_at is not None and self._clock() >= self._next_retry_at:
                self._try_connect()
            if not self._connected:
                return 0

        delivered = 0
        try:
            while True:
                message = self._pubsub.get_message(timeout=timeout)
                if message is None:
                    break
                if message.get("type") == "message":
                    self._deliver(message["channel"], message["data"])
                    delivered += 1
                timeout = 0.0
        except (ConnectionError, TimeoutError) as e:
            self._handle_failure(e)
        return delivered

    def disconnect(self) -> None:
        self._closed = True
        self._connected = False
        self._next_retry_at = None
        self._close_connections()
        logger.info(f"Broker session ended: {self._options.client_id if self._options else '-'}")

    def _try_connect(self) -> bool:
        try:
            client = self._client_factory(self._endpoint, self._options)
            client.ping()
            pubsub = client.pubsub(ignore_subscribe_messages=True)
        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Broker connection failed: {e}. Retrying in {self._options.reconnect_interval_ms}ms")
            self._schedule_reconnect()
            return False

        self._client = client
        self._pubsub = pubsub
        self._connected = True
        self._next_retry_at = None
        logger.info(f"Broker connected: {self._options.client_id}")

        if self._options.clean_session:
            self._topics.clear()
        else:
            for topic in sorted(self._topics):
                self.subscribe(topic)

        if self.on_connect is not None and self._connected:
            self.on_connect()
        return True

    def _deliver(self, topic: str, payload: Payload):
        if self.on_message is None:
            return
        try:
            self.on_message(topic, payload)
        except Exception as e:
            logger.error(f"Error handling message on {topic}: {e}", exc_info=True)

    def _handle_failure(self, error: Exception):
        logger.warning(f"Broker connection lost: {error}")
        self._connected = False
        self._close_connections()
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        if not self._closed:
            self._next_retry_at = self._clock() + self._options.reconnect_interval_ms / 1000.0

    def _close_connections(self):
        for resource in (self._pubsub, self._client):
            if resource is None:
                continue
            try:
                resource.close()
            except RedisError as e:
                logger.debug(f"Ignoring error while closing broker connection: {e}")
        self._pubsub = None
        self._client = None
