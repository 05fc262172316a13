import logging
from typing import Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.asyncio import Redis

from dice_bridge import load_settings
from dice_bridge.availability import AvailabilityProbe, AvailabilityResponder
from dice_bridge.broadcast_channel import BroadcastChannel, parse_subject
from dice_bridge.catalog_resolver import DieCatalogResolver
from dice_bridge.dice_api import DiceAPI
from dice_bridge.heartbeat import HEARTBEAT_KEY, HeartbeatPublisher
from dice_bridge.load_settings import INTEGRATION_CHANNEL, STATE_CHANNEL, namespaced
from dice_bridge.models.dc_models import CatalogDie
from dice_bridge.request_registry import RequestRegistry
from dice_bridge.roll_orchestrator import ExternalRollHandler, RollExecutor, RollOrchestrator
from dice_bridge.roll_state_store import RollStateStore
from dice_bridge.services.roll_executor import StoreRollExecutor
from dice_bridge.state_watcher import DiceEventEmitter, StateWatcher


class DiceIntegration:
    """Mountable unit wiring the whole integration protocol.

    start() opens the channels and starts every component; stop() tears all
    of it down: pending requests are rejected, the heartbeat and watchers are
    stopped and the channels are closed. Both are idempotent.
    """

    def __init__(
        self,
        redis: Optional[Redis],
        player_id: str = load_settings.player_id,
        version: str = load_settings.plugin_version,
        namespace: str = load_settings.plugin_id,
        enable_responder: bool = load_settings.enable_responder,
        heartbeat_interval: int = load_settings.heartbeat_interval,
        roll_timeout: float = load_settings.roll_timeout,
        availability_timeout: float = load_settings.availability_timeout,
        executor: Optional[RollExecutor] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.redis = redis
        self.player_id = player_id
        self.version = version
        self.namespace = namespace
        self.enable_responder = enable_responder
        self.heartbeat_interval = heartbeat_interval
        self.roll_timeout = roll_timeout
        self.availability_timeout = availability_timeout
        self.executor = executor
        self.scheduler = scheduler

        self.started = False
        self.registry: Optional[RequestRegistry] = None
        self.events: Optional[DiceEventEmitter] = None
        self.channel: Optional[BroadcastChannel] = None
        self.state_channel: Optional[BroadcastChannel] = None
        self.store: Optional[RollStateStore] = None
        self.watcher: Optional[StateWatcher] = None
        self.probe: Optional[AvailabilityProbe] = None
        self.dice_api: Optional[DiceAPI] = None
        self.responder: Optional[AvailabilityResponder] = None
        self.roll_handler: Optional[ExternalRollHandler] = None
        self.heartbeat: Optional[HeartbeatPublisher] = None
        self._own_executor: Optional[StoreRollExecutor] = None

    @property
    def available(self) -> bool:
        return self.started and self.channel is not None and self.channel.available

    async def start(self, catalog: Iterable[CatalogDie] = ()) -> None:
        """Start the integration

        Args:
            catalog (Iterable[CatalogDie], optional): Local dice in catalog order. Only used by the responder.
        """
        if self.started:
            return
        self.started = True
        self.registry = RequestRegistry()
        self.events = DiceEventEmitter()
        self.channel = await BroadcastChannel.open(
            self.redis, namespaced(INTEGRATION_CHANNEL, self.namespace)
        )
        self.state_channel = await BroadcastChannel.open(
            self.redis, namespaced(STATE_CHANNEL, self.namespace), parser=parse_subject
        )
        self.store = RollStateStore(self.redis, self.namespace)

        self.watcher = StateWatcher(self.store, self.state_channel, self.registry, self.events).start()
        self.probe = AvailabilityProbe(
            self.channel, self.registry, timeout=self.availability_timeout
        ).start()
        self.dice_api = DiceAPI(
            self.channel, self.registry, self.probe, self.store, self.events, timeout=self.roll_timeout
        ).start()

        if self.enable_responder and self.channel.available:
            executor = self.executor
            if executor is None:
                executor = self._own_executor = StoreRollExecutor(self.store, self.player_id)
            orchestrator = RollOrchestrator(DieCatalogResolver(catalog), executor)
            self.responder = AvailabilityResponder(self.channel, self.version).start()
            self.roll_handler = ExternalRollHandler(self.channel, orchestrator, self.events).start()
            self.heartbeat = HeartbeatPublisher(
                self.redis,
                self.version,
                interval=self.heartbeat_interval,
                key=namespaced(HEARTBEAT_KEY, self.namespace),
                scheduler=self.scheduler,
            )
            await self.heartbeat.start()
        logging.info(
            f"Dice integration started for {self.player_id} "
            f"(responder={self.roll_handler is not None}, transport={self.channel.available})"
        )

    async def stop(self) -> None:
        if not self.started:
            return
        self.started = False
        if self.heartbeat is not None:
            self.heartbeat.stop()
        for component in (self.roll_handler, self.responder, self.dice_api, self.probe, self.watcher):
            if component is not None:
                component.stop()
        if self._own_executor is not None:
            await self._own_executor.close()
            self._own_executor = None
        self.registry.cancel_all()
        self.events.clear()
        await self.channel.close()
        await self.state_channel.close()
        logging.info(f"Dice integration stopped for {self.player_id}")
