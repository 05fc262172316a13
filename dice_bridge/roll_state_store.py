"""Redis adapter over the shared roll state.

Layout, per player:
- ``{namespace}/roll/{player}``: JSON of the started DiceRoll
- ``{namespace}/rollValues/{player}``: hash of die instance id -> JSON number or null

Every write is followed by a notification carrying the player id on the
``{namespace}/state`` channel. Watchers only read; the write side belongs to
the roll executor.
"""

import json
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError
from redis.asyncio import Redis

from dice_bridge.load_settings import STATE_CHANNEL, namespaced, plugin_id
from dice_bridge.models.dc_models import DiceRoll, SharedRollState


class RollStateStore:
    def __init__(self, redis: Redis, namespace: str = plugin_id):
        self.redis = redis
        self.namespace = namespace
        self.channel = namespaced(STATE_CHANNEL, namespace)

    def roll_key(self, player_id: str) -> str:
        return namespaced(f"roll/{player_id}", self.namespace)

    def values_key(self, player_id: str) -> str:
        return namespaced(f"rollValues/{player_id}", self.namespace)

    async def read(self, player_id: str) -> Optional[SharedRollState]:
        """Read one consistent snapshot of a player's roll

        Returns:
            Optional[SharedRollState]: None when the player has no (valid) roll
        """
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.get(self.roll_key(player_id))
            pipe.hgetall(self.values_key(player_id))
            raw_roll, raw_values = await pipe.execute()
        if raw_roll is None:
            return None
        try:
            roll = DiceRoll.model_validate_json(raw_roll)
            roll_values = {key: json.loads(value) for key, value in raw_values.items()}
        except (ValidationError, ValueError) as e:
            logging.debug(f"Ignoring malformed roll state for {player_id}: {e}")
            return None
        return SharedRollState(player_id=player_id, roll=roll, roll_values=roll_values)

    async def read_all(self) -> List[SharedRollState]:
        prefix = self.roll_key("")
        states = []
        async for key in self.redis.scan_iter(match=f"{prefix}*"):
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            state = await self.read(key[len(prefix):])
            if state is not None:
                states.append(state)
        return sorted(states, key=lambda state: state.player_id)

    async def start_roll(self, player_id: str, roll: DiceRoll) -> None:
        """Replace the player's roll; every die instance starts unset"""
        values: Dict[str, str] = {die.id: "null" for die in roll.dice}
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(self.values_key(player_id))
            if values:
                pipe.hset(self.values_key(player_id), mapping=values)
            pipe.set(self.roll_key(player_id), roll.model_dump_json(by_alias=True))
            await pipe.execute()
        await self.notify(player_id)

    async def set_value(self, player_id: str, instance_id: str, value: Optional[int]) -> None:
        await self.redis.hset(self.values_key(player_id), instance_id, json.dumps(value))
        await self.notify(player_id)

    async def notify(self, player_id: str) -> None:
        await self.redis.publish(self.channel, player_id)
