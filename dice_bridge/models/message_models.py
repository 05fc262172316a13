"""Wire contract exchanged between extension instances.

Every variant is discriminated by its ``type`` field. Field names go on the
wire in camelCase, unknown fields are ignored, and ``type`` values are never
repurposed. Anything that does not validate against a known variant is
dropped by :func:`parse_message`.
"""

import json
import logging
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from dice_bridge.models.dc_models import Advantage, CamelModel, DiceRoll, DieRequest


class RollTrigger(CamelModel):
    type: Literal["TRIGGER_ROLL"] = "TRIGGER_ROLL"
    roll_id: str
    dice: List[DieRequest]
    hidden: Optional[bool] = None
    bonus: Optional[int] = None
    advantage: Optional[Advantage] = None


class AvailabilityRequest(CamelModel):
    type: Literal["AVAILABILITY_REQUEST"] = "AVAILABILITY_REQUEST"
    request_id: str


class AvailabilityResponse(CamelModel):
    type: Literal["AVAILABILITY_RESPONSE"] = "AVAILABILITY_RESPONSE"
    request_id: str
    available: bool
    version: Optional[str] = None


class RollComplete(CamelModel):
    type: Literal["ROLL_COMPLETE"] = "ROLL_COMPLETE"
    roll_id: str
    player_id: str
    individual_results: Dict[str, int]
    final_value: int
    dice_roll: Optional[DiceRoll] = None


Message = Annotated[
    Union[RollTrigger, AvailabilityRequest, AvailabilityResponse, RollComplete],
    Field(discriminator="type"),
]

message_adapter = TypeAdapter(Message)


def parse_message(raw) -> Optional[Message]:
    """Validate a raw payload from the channel

    Args:
        raw (str | bytes | dict): Payload as delivered by the medium

    Returns:
        Optional[Message]: The typed message, or None if the payload is not one of ours
    """
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
        return message_adapter.validate_python(raw)
    except (ValueError, RecursionError, ValidationError) as e:
        logging.debug(f"Dropping irrelevant payload: {e}")
        return None


def encode_message(message: Message) -> str:
    return message.model_dump_json(by_alias=True, exclude_none=True)
