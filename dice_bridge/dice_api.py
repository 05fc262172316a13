"""Direct-call surface for same-process callers.

Semantically the same as publishing a RollTrigger on the integration
channel: every call goes over the channel and is answered by whichever
responder is listening, possibly this process's own.
"""

import time
from typing import Any, Callable, List, Optional

from dice_bridge.availability import AvailabilityProbe
from dice_bridge.broadcast_channel import BroadcastChannel
from dice_bridge.domain.dice_rules import is_roll_complete, roll_total
from dice_bridge.errors import TransportUnavailableError
from dice_bridge.ids import new_correlation_id
from dice_bridge.load_settings import roll_timeout
from dice_bridge.models.dc_models import (
    AvailabilityResult,
    DiceResult,
    DiceRoll,
    DiceRollConfig,
    DiceStartData,
    PlayerDiceState,
    SharedRollState,
)
from dice_bridge.models.message_models import RollComplete, RollTrigger
from dice_bridge.request_registry import RequestRegistry, roll_request_key
from dice_bridge.roll_state_store import RollStateStore
from dice_bridge.state_watcher import ROLL_COMPLETE, ROLL_STARTED, DiceEventEmitter


def player_dice_state(state: SharedRollState) -> PlayerDiceState:
    instance_ids = [die.id for die in state.roll.dice] or None
    finished = is_roll_complete(state.roll_values, instance_ids)
    final_value = None
    if finished:
        keys = instance_ids or state.roll_values.keys()
        final_value = roll_total(state.roll_values[key] for key in keys)
    return PlayerDiceState(
        player_id=state.player_id,
        is_rolling=not finished,
        dice_roll=state.roll,
        roll_values=state.roll_values,
        final_value=final_value,
    )


class DiceAPI:
    def __init__(
        self,
        channel: BroadcastChannel,
        registry: RequestRegistry,
        probe: AvailabilityProbe,
        store: RollStateStore,
        events: DiceEventEmitter,
        timeout: float = roll_timeout,
        new_roll_id: Callable[[], str] = new_correlation_id,
    ):
        self.channel = channel
        self.registry = registry
        self.prober = probe
        self.store = store
        self.events = events
        self.timeout = timeout
        self.new_roll_id = new_roll_id
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "DiceAPI":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_message)
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_message(self, message) -> None:
        if not isinstance(message, RollComplete):
            return
        self.registry.resolve(
            roll_request_key(message.roll_id),
            DiceResult(
                player_id=message.player_id,
                dice_roll=message.dice_roll or DiceRoll(roll_id=message.roll_id),
                individual_results=message.individual_results,
                final_value=message.final_value,
                timestamp=time.time(),
            ),
        )

    def _trigger(self, roll_id: str, config: DiceRollConfig) -> RollTrigger:
        return RollTrigger(
            roll_id=roll_id,
            dice=config.dice,
            hidden=config.hidden,
            bonus=config.bonus,
            advantage=config.advantage,
        )

    async def trigger_roll(self, config: DiceRollConfig, timeout: Optional[float] = None) -> DiceResult:
        """Trigger a dice roll and wait for the result

        Raises:
            RequestTimeoutError: No completion was seen before the timeout
            TransportUnavailableError: The trigger could not be sent
            RequestCancelledError: The integration was stopped while waiting
        """
        roll_id = self.new_roll_id()
        key = roll_request_key(roll_id)
        future = self.registry.wait_for(key, self.timeout if timeout is None else timeout)
        if not await self.channel.publish(self._trigger(roll_id, config)):
            self.registry.reject(key, TransportUnavailableError(self.channel.name))
        return await future

    async def trigger_roll_async(self, config: DiceRollConfig) -> str:
        """Trigger a dice roll without waiting for the result

        Returns:
            str: rollId of the trigger, as an acknowledgement
        """
        roll_id = self.new_roll_id()
        if not await self.channel.publish(self._trigger(roll_id, config)):
            raise TransportUnavailableError(self.channel.name)
        return roll_id

    def is_available(self) -> bool:
        return self.channel.available

    async def probe(self, timeout: Optional[float] = None) -> AvailabilityResult:
        return await self.prober.probe(timeout)

    def on_roll_complete(self, callback: Callable[[DiceResult], Any]) -> Callable[[], None]:
        return self.events.on(ROLL_COMPLETE, callback)

    def on_roll_started(self, callback: Callable[[DiceStartData], Any]) -> Callable[[], None]:
        return self.events.on(ROLL_STARTED, callback)

    async def get_current_dice_state(self) -> List[PlayerDiceState]:
        return [player_dice_state(state) for state in await self.store.read_all()]

    async def is_player_rolling(self, player_id: str) -> bool:
        state = await self.store.read(player_id)
        if state is None:
            return False
        return player_dice_state(state).is_rolling

    def listen_to_player(
        self, player_id: str, callback: Callable[[PlayerDiceState], Any]
    ) -> Callable[[], None]:
        """Follow one player's rolls as they start and finish"""

        def on_started(data: DiceStartData):
            if data.player_id != player_id:
                return None
            return callback(
                PlayerDiceState(
                    player_id=player_id,
                    is_rolling=True,
                    dice_roll=data.dice_roll,
                    roll_values={die.id: None for die in data.dice_roll.dice},
                )
            )

        def on_complete(result: DiceResult):
            if result.player_id != player_id:
                return None
            return callback(
                PlayerDiceState(
                    player_id=player_id,
                    is_rolling=False,
                    dice_roll=result.dice_roll,
                    roll_values=dict(result.individual_results),
                    final_value=result.final_value,
                )
            )

        off_started = self.events.on(ROLL_STARTED, on_started)
        off_complete = self.events.on(ROLL_COMPLETE, on_complete)

        def unsubscribe() -> None:
            off_started()
            off_complete()

        return unsubscribe
