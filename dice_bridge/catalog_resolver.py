from typing import Dict, Iterable, List, Optional, Tuple

from dice_bridge.domain.dice_rules import resolve_descriptor, resolve_requests
from dice_bridge.models.dc_models import CatalogDie, DieDescriptor, DieRequest, RollSpecEntry


class DieCatalogResolver:
    """Maps abstract die descriptors onto the local catalog.

    Catalog order is the order the dice were given in (the DB reads them by
    position); when several entries match, the first one wins.
    """

    def __init__(self, dice: Iterable[CatalogDie]):
        self.dice_by_id: Dict[str, CatalogDie] = {die.id: die for die in dice}

    def resolve(self, descriptor: DieDescriptor) -> Optional[str]:
        return resolve_descriptor(descriptor, self.dice_by_id.values())

    def resolve_requests(
        self, requests: Iterable[DieRequest]
    ) -> Tuple[List[RollSpecEntry], List[DieDescriptor]]:
        return resolve_requests(requests, list(self.dice_by_id.values()))
