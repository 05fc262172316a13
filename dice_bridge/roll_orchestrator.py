import logging
from collections import OrderedDict
from typing import Callable, Iterable, Optional, Protocol

from dice_bridge.broadcast_channel import BroadcastChannel
from dice_bridge.catalog_resolver import DieCatalogResolver
from dice_bridge.domain.dice_rules import expand_roll_spec
from dice_bridge.ids import generate_dice_id
from dice_bridge.models.dc_models import Advantage, DiceResult, DiceRoll, DieRequest, RollSpec
from dice_bridge.models.message_models import RollComplete, RollTrigger
from dice_bridge.state_watcher import ROLL_COMPLETE, DiceEventEmitter

MAX_REMEMBERED_TRIGGERS = 256


class RollExecutor(Protocol):
    async def submit_roll(self, roll: DiceRoll) -> None:
        """Start a roll. Returns once it has started, not when it finishes."""


class RollOrchestrator:
    """Builds roll specs from die requests and hands them to the local executor."""

    def __init__(
        self,
        resolver: DieCatalogResolver,
        executor: RollExecutor,
        new_instance_id: Callable[[], str] = generate_dice_id,
    ):
        self.resolver = resolver
        self.executor = executor
        self.new_instance_id = new_instance_id

    def build_roll_spec(
        self,
        requests: Iterable[DieRequest],
        bonus: Optional[int] = None,
        advantage: Optional[Advantage] = None,
        hidden: Optional[bool] = None,
    ) -> RollSpec:
        """Resolve every request; unmatched descriptors are logged and skipped

        Returns:
            RollSpec: Possibly empty spec, with unmatched descriptors kept for diagnostics
        """
        entries, unmatched = self.resolver.resolve_requests(requests)
        for descriptor in unmatched:
            logging.warning(
                f"No local die matches style={descriptor.style.value} "
                f"type={descriptor.type.value if descriptor.type else None}"
            )
        return RollSpec(
            dice=entries,
            bonus=bonus,
            advantage=advantage,
            hidden=bool(hidden),
            unmatched=unmatched,
        )

    async def submit(self, spec: RollSpec, roll_id: Optional[str] = None) -> DiceRoll:
        """Start the roll. An empty spec starts an empty roll."""
        roll = expand_roll_spec(spec, self.resolver.dice_by_id, self.new_instance_id, roll_id)
        await self.executor.submit_roll(roll)
        return roll


class ExternalRollHandler:
    """Rolls dice on behalf of other extension instances.

    Triggers are deduplicated by rollId. When a triggered roll completes, a
    RollComplete message is published so callers need not watch the shared
    state themselves.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        orchestrator: RollOrchestrator,
        events: DiceEventEmitter,
    ):
        self.channel = channel
        self.orchestrator = orchestrator
        self.events = events
        self.triggered: "OrderedDict[str, bool]" = OrderedDict()  # rollId -> awaiting completion
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._off_complete: Optional[Callable[[], None]] = None

    def start(self) -> "ExternalRollHandler":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_message)
            self._off_complete = self.events.on(ROLL_COMPLETE, self.on_roll_complete)
        return self

    async def on_message(self, message) -> None:
        if not isinstance(message, RollTrigger):
            return
        if message.roll_id in self.triggered:
            logging.debug(f"Ignoring repeated trigger {message.roll_id}")
            return
        self._remember(message.roll_id)
        try:
            spec = self.orchestrator.build_roll_spec(
                message.dice,
                bonus=message.bonus,
                advantage=message.advantage,
                hidden=message.hidden,
            )
            await self.orchestrator.submit(spec, roll_id=message.roll_id)
            logging.info(f"External dice roll triggered: {message.roll_id}")
        except Exception as e:
            self.triggered[message.roll_id] = False
            logging.error(f"Failed to handle external roll request: {e}")

    async def on_roll_complete(self, result: DiceResult) -> None:
        roll_id = result.dice_roll.roll_id
        if not roll_id or not self.triggered.get(roll_id):
            return
        self.triggered[roll_id] = False
        await self.channel.publish(
            RollComplete(
                roll_id=roll_id,
                player_id=result.player_id,
                individual_results=result.individual_results,
                final_value=result.final_value,
                dice_roll=result.dice_roll,
            )
        )

    def _remember(self, roll_id: str) -> None:
        self.triggered[roll_id] = True
        while len(self.triggered) > MAX_REMEMBERED_TRIGGERS:
            self.triggered.popitem(last=False)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._off_complete is not None:
            self._off_complete()
            self._off_complete = None
