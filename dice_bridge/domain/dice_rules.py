"""Dice rules that are independent from the transport and the stores.

Rule of thumb:
- OK: descriptor matching, count normalization, completion checks, sums.
- Not OK: touching Redis, the catalog DB, FastAPI, time.time(), random.
"""

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from dice_bridge.models.dc_models import (
    CatalogDie,
    DiceResult,
    DiceRoll,
    DiceType,
    DieDescriptor,
    DieInstance,
    DieRequest,
    RollSpec,
    RollSpecEntry,
)


def resolve_descriptor(descriptor: DieDescriptor, catalog: Iterable[CatalogDie]) -> Optional[str]:
    """Find the local die a descriptor names.

    The first catalog entry (in catalog iteration order) whose style matches,
    and whose type matches when the descriptor gives one, wins.

    Returns:
        Optional[str]: Die id, or None when nothing in the catalog matches
    """
    for die in catalog:
        if die.style != descriptor.style:
            continue
        if descriptor.type is not None and die.type != descriptor.type:
            continue
        return die.id
    return None


def normalize_count(count: Optional[int]) -> int:
    """Omitted, zero and negative counts all mean one die."""
    if count is None or count < 1:
        return 1
    return count


def resolve_requests(
    requests: Iterable[DieRequest], catalog: List[CatalogDie]
) -> Tuple[List[RollSpecEntry], List[DieDescriptor]]:
    """Resolve every requested die against the catalog.

    Requests resolving to the same die are merged by adding their counts;
    order of first appearance is kept.

    Returns:
        tuple[List[RollSpecEntry], List[DieDescriptor]]: Resolved entries and unmatched descriptors
    """
    counts: Dict[str, int] = {}
    unmatched: List[DieDescriptor] = []
    for request in requests:
        die_id = resolve_descriptor(request.descriptor, catalog)
        if die_id is None:
            unmatched.append(request.descriptor)
            continue
        counts[die_id] = counts.get(die_id, 0) + normalize_count(request.count)
    entries = [RollSpecEntry(die_id=die_id, count=count) for die_id, count in counts.items()]
    return entries, unmatched


def expand_roll_spec(
    spec: RollSpec,
    dice_by_id: Mapping[str, CatalogDie],
    new_instance_id: Callable[[], str],
    roll_id: Optional[str] = None,
) -> DiceRoll:
    """Turn (die id, count) pairs into one instance per physical die."""
    instances = []
    for entry in spec.dice:
        die = dice_by_id[entry.die_id]
        for _ in range(entry.count):
            instances.append(DieInstance(id=new_instance_id(), style=die.style, type=die.type))
    return DiceRoll(
        roll_id=roll_id,
        dice=instances,
        bonus=spec.bonus,
        hidden=spec.hidden,
        advantage=spec.advantage,
    )


def is_roll_complete(
    roll_values: Mapping[str, Optional[int]], instance_ids: Optional[Iterable[str]] = None
) -> bool:
    """A roll is complete once every instance it introduced holds a number.

    Args:
        roll_values (Mapping[str, Optional[int]]): Current snapshot of per-die values
        instance_ids (Iterable[str], optional): Instances of the originating roll. Defaults to the snapshot keys.
    """
    if instance_ids is None:
        instance_ids = roll_values.keys()
    return all(roll_values.get(instance_id) is not None for instance_id in instance_ids)


def roll_total(values: Iterable[int]) -> int:
    # plain sum: the dice in scope are uniform numeric dice
    total = 0
    for value in values:
        total += value
    return total


def build_dice_result(
    player_id: str,
    roll: DiceRoll,
    roll_values: Mapping[str, Optional[int]],
    timestamp: float,
) -> DiceResult:
    individual_results = {
        die.id: roll_values[die.id] for die in roll.dice if roll_values.get(die.id) is not None
    }
    return DiceResult(
        player_id=player_id,
        dice_roll=roll,
        individual_results=individual_results,
        final_value=roll_total(individual_results.values()),
        timestamp=timestamp,
    )


DICE_FACES = {
    DiceType.D4: 4,
    DiceType.D6: 6,
    DiceType.D8: 8,
    DiceType.D10: 10,
    DiceType.D12: 12,
    DiceType.D20: 20,
    DiceType.D100: 100,
}


def face_count(die_type: DiceType) -> int:
    return DICE_FACES[die_type]
