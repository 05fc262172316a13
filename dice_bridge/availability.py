import logging
from typing import Callable, Optional

from dice_bridge.broadcast_channel import BroadcastChannel
from dice_bridge.errors import DiceBridgeError, TransportUnavailableError
from dice_bridge.ids import new_correlation_id
from dice_bridge.load_settings import availability_timeout
from dice_bridge.models.dc_models import AvailabilityResult
from dice_bridge.models.message_models import AvailabilityRequest, AvailabilityResponse
from dice_bridge.request_registry import RequestRegistry, availability_request_key


class AvailabilityResponder:
    """Answers every availability request seen on the channel."""

    def __init__(self, channel: BroadcastChannel, version: str):
        self.channel = channel
        self.version = version
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "AvailabilityResponder":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_message)
        return self

    async def on_message(self, message) -> None:
        if not isinstance(message, AvailabilityRequest):
            return
        await self.channel.publish(
            AvailabilityResponse(
                request_id=message.request_id, available=True, version=self.version
            )
        )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class AvailabilityProbe:
    """Asks whether a responder is listening, bounded by a timeout.

    A probe settles from whichever comes first: a matching response or the
    timeout. Duplicate responses for the same request are ignored by the
    registry.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        registry: RequestRegistry,
        timeout: float = availability_timeout,
        new_request_id: Callable[[], str] = new_correlation_id,
    ):
        self.channel = channel
        self.registry = registry
        self.timeout = timeout
        self.new_request_id = new_request_id
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "AvailabilityProbe":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_message)
        return self

    def on_message(self, message) -> None:
        if not isinstance(message, AvailabilityResponse):
            return
        self.registry.resolve(
            availability_request_key(message.request_id),
            AvailabilityResult(available=message.available, version=message.version),
        )

    async def probe(self, timeout: Optional[float] = None) -> AvailabilityResult:
        """Probe for a responder

        Args:
            timeout (Optional[float], optional): Seconds to wait. Defaults to the probe timeout.

        Returns:
            AvailabilityResult: available=False on timeout, teardown or a disabled channel
        """
        if not self.channel.available:
            return AvailabilityResult(available=False)
        request_id = self.new_request_id()
        key = availability_request_key(request_id)
        future = self.registry.wait_for(key, self.timeout if timeout is None else timeout)
        published = await self.channel.publish(AvailabilityRequest(request_id=request_id))
        if not published:
            self.registry.reject(key, TransportUnavailableError(self.channel.name))
        try:
            return await future
        except DiceBridgeError as e:
            logging.info(f"No dice responder on {self.channel.name}: {e}")
            return AvailabilityResult(available=False)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
