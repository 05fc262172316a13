from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from enum import Enum
from typing import Optional, Dict, List


class DiceStyle(str, Enum):
    MYZBASE = "MYZBASE"  # attribute dice
    MYZSKILL = "MYZSKILL"
    MYZGEAR = "MYZGEAR"
    GALAXY = "GALAXY"
    GEMSTONE = "GEMSTONE"
    GLASS = "GLASS"
    IRON = "IRON"
    NEBULA = "NEBULA"
    SUNRISE = "SUNRISE"
    SUNSET = "SUNSET"
    WALNUT = "WALNUT"


class DiceType(str, Enum):
    D4 = "D4"
    D6 = "D6"
    D8 = "D8"
    D10 = "D10"
    D12 = "D12"
    D20 = "D20"
    D100 = "D100"


class Advantage(str, Enum):
    ADVANTAGE = "ADVANTAGE"
    DISADVANTAGE = "DISADVANTAGE"


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"


class DieDescriptor(CamelModel):
    style: DiceStyle
    type: Optional[DiceType] = None


class DieRequest(CamelModel):
    descriptor: DieDescriptor
    count: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def lift_flat_descriptor(cls, data):
        # {style, type?, count?} is accepted as well as {descriptor, count?}
        if isinstance(data, dict) and "descriptor" not in data and "style" in data:
            data = dict(data)
            data["descriptor"] = {"style": data.pop("style"), "type": data.pop("type", None)}
        return data


class DiceRollConfig(CamelModel):
    dice: List[DieRequest]
    bonus: Optional[int] = None
    hidden: Optional[bool] = None
    advantage: Optional[Advantage] = None


class CatalogDie(CamelModel):
    id: str
    style: DiceStyle
    type: DiceType
    position: int = 0

    class Config:
        from_attributes = True


class RollSpecEntry(CamelModel):
    die_id: str
    count: int = Field(ge=1)


class RollSpec(CamelModel):
    dice: List[RollSpecEntry] = []
    bonus: Optional[int] = None
    advantage: Optional[Advantage] = None
    hidden: bool = False
    unmatched: List[DieDescriptor] = []  # diagnostics only, never submitted


class DieInstance(CamelModel):
    id: str
    style: DiceStyle
    type: DiceType


class DiceRoll(CamelModel):
    roll_id: Optional[str] = None
    dice: List[DieInstance] = []
    bonus: Optional[int] = None
    hidden: Optional[bool] = None
    advantage: Optional[Advantage] = None


class SharedRollState(CamelModel):
    player_id: str
    roll: DiceRoll
    roll_values: Dict[str, Optional[int]]


class DiceResult(CamelModel):
    player_id: str
    dice_roll: DiceRoll
    individual_results: Dict[str, int]
    final_value: int
    timestamp: float


class DiceStartData(CamelModel):
    player_id: str
    dice_roll: DiceRoll
    timestamp: float


class PlayerDiceState(CamelModel):
    player_id: str
    is_rolling: bool
    dice_roll: Optional[DiceRoll] = None
    roll_values: Optional[Dict[str, Optional[int]]] = None
    final_value: Optional[int] = None


class AvailabilityResult(CamelModel):
    available: bool
    version: Optional[str] = None


class Heartbeat(CamelModel):
    timestamp: float
    version: str
