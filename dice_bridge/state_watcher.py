import inspect
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from dice_bridge.broadcast_channel import BroadcastChannel
from dice_bridge.domain.dice_rules import build_dice_result, is_roll_complete
from dice_bridge.models.dc_models import DiceResult, DiceRoll, DiceStartData, SharedRollState
from dice_bridge.request_registry import RequestRegistry, roll_request_key
from dice_bridge.roll_state_store import RollStateStore

ROLL_STARTED = "ROLL_STARTED"
ROLL_COMPLETE = "ROLL_COMPLETE"


class DiceEventEmitter:
    """In-process notification of roll events."""

    def __init__(self):
        self.listeners: Dict[str, List[Callable[[Any], Any]]] = defaultdict(list)

    def on(self, event_type: str, callback: Callable[[Any], Any]) -> Callable[[], None]:
        self.listeners[event_type].append(callback)

        def off() -> None:
            if callback in self.listeners[event_type]:
                self.listeners[event_type].remove(callback)

        return off

    async def emit(self, event_type: str, data: Any) -> None:
        for callback in list(self.listeners[event_type]):
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logging.error(f"{event_type} listener failed: {e}")

    def clear(self) -> None:
        self.listeners.clear()


def roll_identity(roll: DiceRoll) -> str:
    # rolls started without a rollId are told apart by their instance ids
    if roll.roll_id:
        return roll.roll_id
    return "|".join(die.id for die in roll.dice)


class StateWatcher:
    """Detects finished rolls by re-reading the shared roll state.

    On every change notification for a player the current snapshot is
    checked; the roll is complete once every instance it introduced holds a
    number. Each roll completes at most once. Completion of a roll carrying a
    rollId resolves the matching pending request, if any.
    """

    def __init__(
        self,
        store: RollStateStore,
        channel: BroadcastChannel,
        registry: RequestRegistry,
        events: DiceEventEmitter,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.channel = channel
        self.registry = registry
        self.events = events
        self.clock = clock
        self.started: Dict[str, str] = {}
        self.completed: Dict[str, str] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "StateWatcher":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_notification)
        return self

    async def on_notification(self, player_id: str) -> None:
        state = await self.store.read(player_id)
        if state is not None:
            await self.check(state)

    async def refresh(self) -> List[DiceResult]:
        """Check every player's current roll, e.g. after missed notifications"""
        results = []
        for state in await self.store.read_all():
            result = await self.check(state)
            if result is not None:
                results.append(result)
        return results

    async def check(self, state: SharedRollState) -> Optional[DiceResult]:
        player_id = state.player_id
        identity = roll_identity(state.roll)

        if self.started.get(player_id) != identity:
            self.started[player_id] = identity
            await self.events.emit(
                ROLL_STARTED,
                DiceStartData(player_id=player_id, dice_roll=state.roll, timestamp=self.clock()),
            )

        instance_ids = [die.id for die in state.roll.dice] or None
        if not is_roll_complete(state.roll_values, instance_ids):
            return None
        if self.completed.get(player_id) == identity:
            return None
        self.completed[player_id] = identity

        result = build_dice_result(player_id, state.roll, state.roll_values, self.clock())
        if state.roll.roll_id:
            self.registry.resolve(roll_request_key(state.roll.roll_id), result)
        await self.events.emit(ROLL_COMPLETE, result)
        return result

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
