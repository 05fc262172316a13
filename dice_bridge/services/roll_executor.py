import asyncio
import logging
import random
from typing import Optional, Set, Tuple

from dice_bridge.domain.dice_rules import face_count
from dice_bridge.models.dc_models import DiceRoll
from dice_bridge.roll_state_store import RollStateStore


class StoreRollExecutor:
    """Minimal dice tray writing into the shared roll state.

    A submitted roll replaces the player's current one with every die unset,
    then each die settles on a uniform face value after a short delay.
    """

    def __init__(
        self,
        store: RollStateStore,
        player_id: str,
        settle_delay: Tuple[float, float] = (0.05, 0.4),
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.player_id = player_id
        self.settle_delay = settle_delay
        self.rng = rng or random.Random()
        self.tasks: Set[asyncio.Task] = set()

    async def submit_roll(self, roll: DiceRoll) -> None:
        # the tray holds one roll per player
        self._cancel_tasks()
        await self.store.start_roll(self.player_id, roll)
        task = asyncio.create_task(self._settle(roll))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def _settle(self, roll: DiceRoll) -> None:
        try:
            for die in roll.dice:
                await asyncio.sleep(self.rng.uniform(*self.settle_delay))
                value = self.rng.randint(1, face_count(die.type))
                await self.store.set_value(self.player_id, die.id, value)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"Failed to settle roll {roll.roll_id}: {e}")

    def _cancel_tasks(self) -> None:
        for task in list(self.tasks):
            task.cancel()

    async def close(self) -> None:
        tasks = list(self.tasks)
        self._cancel_tasks()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
