"""
Test doubles for the team broker, Redis and the wall clock.

InMemoryBroker/FakeTransport stand in for a broker session with the same
retained and fan-out rules as the Redis transport. FakeRedis covers the
handful of client calls RedisPubSubTransport and RedisKeyValueStore make.
"""
from collections import deque
from datetime import datetime, timedelta

from redis.exceptions import ConnectionError

from core.transport import ConnectOptions


class FixedClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class InMemoryBroker:
    """
    Minimal broker: topic fan-out plus one retained payload per topic.

    Deliveries are queued per client and only handed over on pump(), like
    the Redis transport.
    """

    def __init__(self):
        self.retained = {}
        self.clients = []
        self.published = []
        self.online = True

    def attach(self, client):
        self.clients.append(client)

    def detach(self, client):
        if client in self.clients:
            self.clients.remove(client)

    def drop(self):
        """Sever every session; clients reconnect on their next pump() once restored."""
        self.online = False
        for client in list(self.clients):
            client.lose_connection()

    def restore(self):
        self.online = True

    def publish(self, sender, topic, payload, retain):
        self.published.append((sender.options.client_id, topic, payload, retain))
        if retain:
            self.retained[topic] = payload
        for client in self.clients:
            if topic in client.topics:
                client.inbox.append((topic, payload))


class FakeTransport:
    """PubSubTransport over an InMemoryBroker."""

    def __init__(self, broker: InMemoryBroker):
        self.broker = broker
        self.on_message = None
        self.on_connect = None
        self.options = None
        self.endpoint = None
        self.topics = set()
        self.inbox = deque()
        self._connected = False
        self.disconnected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, endpoint: str, options: ConnectOptions):
        self.endpoint = endpoint
        self.options = options
        self._attach()

    def _attach(self):
        if not self.broker.online:
            return
        self._connected = True
        self.broker.attach(self)
        if self.on_connect:
            self.on_connect()

    def subscribe(self, topic: str):
        self.topics.add(topic)
        if topic in self.broker.retained:
            self.inbox.append((topic, self.broker.retained[topic]))

    def publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        if not self._connected:
            return False
        self.broker.publish(self, topic, payload, retain)
        return True

    def lose_connection(self):
        self._connected = False
        self.topics.clear()
        self.inbox.clear()
        self.broker.detach(self)

    def pump(self, timeout: float = 0.0) -> int:
        if self.disconnected:
            return 0
        if not self._connected and self.options is not None:
            self._attach()
        delivered = 0
        while self.inbox:
            topic, payload = self.inbox.popleft()
            if self.on_message:
                self.on_message(topic, payload)
            delivered += 1
        return delivered

    def disconnect(self):
        self._connected = False
        self.disconnected = True
        self.topics.clear()
        self.inbox.clear()
        self.broker.detach(self)


class FakeRedisHub:
    """Shared state behind several FakeRedis clients (one Redis server)."""

    def __init__(self):
        self.data = {}
        self.pubsubs = []
        self.down = False


class FakePubSub:

    def __init__(self, hub: FakeRedisHub):
        self.hub = hub
        self.channels = set()
        self.messages = deque()
        self.closed = False

    def subscribe(self, *channels):
        self._check()
        self.channels.update(channels)

    def get_message(self, timeout=0.0):
        self._check()
        return self.messages.popleft() if self.messages else None

    def close(self):
        self.closed = True

    def _check(self):
        if self.hub.down:
            raise ConnectionError("Connection refused")


class FakeRedis:
    """Minimal in-memory Redis mock for unit tests."""

    def __init__(self, hub: FakeRedisHub = None):
        self.hub = hub or FakeRedisHub()
        self.closed = False

    def _check(self):
        if self.hub.down:
            raise ConnectionError("Connection refused")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.hub.data.get(key)

    def set(self, key, value):
        self._check()
        self.hub.data[key] = value
        return True

    def delete(self, *keys):
        for key in keys:
            self.hub.data.pop(key, None)

    def publish(self, channel, message):
        self._check()
        receivers = 0
        for pubsub in self.hub.pubsubs:
            if not pubsub.closed and channel in pubsub.channels:
                pubsub.messages.append({"type": "message", "channel": channel, "data": message})
                receivers += 1
        return receivers

    def pubsub(self, ignore_subscribe_messages=False):
        pubsub = FakePubSub(self.hub)
        self.hub.pubsubs.append(pubsub)
        return pubsub

    def close(self):
        self.closed = True


