import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from dice_bridge.models.message_models import Message, encode_message, parse_message

Listener = Callable[[Any], Union[None, Awaitable[None]]]

READ_TIMEOUT = 1.0
IDLE_SLEEP = 0.01


def parse_subject(raw) -> Optional[str]:
    """Payload parser for notification channels that carry a bare id"""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    if isinstance(raw, str) and raw:
        return raw
    return None


class BroadcastChannel:
    """One namespaced Redis pub/sub channel shared by every extension instance.

    Every message published on the channel, including our own, is parsed and
    handed to every listener. Payloads the parser rejects are dropped.
    """

    def __init__(
        self,
        redis: Optional[Redis],
        name: str,
        parser: Callable[[Any], Any] = parse_message,
    ):
        """Initialize the channel. Nothing is connected until open() is awaited."""
        self.redis: Optional[Redis] = redis
        self.name: str = name
        self.parser = parser
        self.listeners: List[Listener] = []
        self.pubsub: Optional[PubSub] = None
        self.reader_task: Optional[asyncio.Task] = None
        self.available: bool = False
        self.closed: bool = False

    @classmethod
    async def open(
        cls,
        redis: Optional[Redis],
        name: str,
        parser: Callable[[Any], Any] = parse_message,
    ) -> "BroadcastChannel":
        """Open a channel. Never raises: an unreachable medium leaves the channel disabled.

        Args:
            redis (Optional[Redis]): Redis connection object, None when there is no medium
            name (str): Namespaced channel name
            parser (Callable, optional): Turns raw payloads into typed messages. Defaults to parse_message.
        """
        channel = cls(redis, name, parser)
        await channel._connect()
        return channel

    async def _connect(self) -> None:
        if self.redis is None:
            logging.warning(f"No broadcast medium configured, channel {self.name} is disabled")
            return
        try:
            self.pubsub = self.redis.pubsub()
            await self.pubsub.subscribe(self.name)
        except Exception as e:
            logging.warning(f"Broadcast medium unavailable, channel {self.name} is disabled: {e}")
            await self._release_pubsub()
            return
        self.available = True
        self.reader_task = asyncio.create_task(self._read_loop())
        logging.info(f"Opened channel {self.name}")

    async def publish(self, message: Union[Message, str]) -> bool:
        """Publish a message to every subscriber of the channel

        Returns:
            bool: False when the channel is disabled or the medium refused the message
        """
        if not self.available:
            logging.debug(f"Channel {self.name} is disabled, message not sent")
            return False
        payload = message if isinstance(message, str) else encode_message(message)
        try:
            await self.redis.publish(self.name, payload)
        except RedisError as e:
            logging.warning(f"Failed to publish on {self.name}: {e}")
            return False
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Sync and async callables are both accepted.

        Returns:
            Callable[[], None]: Removes the listener; safe to call more than once
        """
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self.listeners)

    async def _read_loop(self) -> None:
        try:
            while True:
                msg = await self.pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=READ_TIMEOUT
                )
                if msg is None:
                    await asyncio.sleep(IDLE_SLEEP)
                    continue
                if msg["type"] != "message":
                    continue
                try:
                    payload = self.parser(msg["data"])
                except Exception as e:
                    logging.debug(f"Dropping unreadable payload on {self.name}: {e}")
                    continue
                if payload is None:
                    continue
                for listener in list(self.listeners):
                    await self._deliver(listener, payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"Channel {self.name} stopped reading: {e}")
            self.available = False

    async def _deliver(self, listener: Listener, payload: Any) -> None:
        try:
            result = listener(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logging.error(f"Listener on {self.name} failed: {e}")

    async def close(self) -> None:
        """Detach every listener and release the subscription. Idempotent."""
        if self.closed:
            return
        self.closed = True
        self.available = False
        self.listeners.clear()
        if self.reader_task is not None and self.reader_task is not asyncio.current_task():
            self.reader_task.cancel()
            try:
                await self.reader_task
            except asyncio.CancelledError:
                pass
            self.reader_task = None
        await self._release_pubsub()
        logging.info(f"Closed channel {self.name}")

    async def _release_pubsub(self) -> None:
        if self.pubsub is None:
            return
        try:
            await self.pubsub.unsubscribe(self.name)
            await self.pubsub.aclose()
        except Exception as e:
            logging.debug(f"Ignoring error while releasing {self.name}: {e}")
        self.pubsub = None
