import fakeredis
import pytest

from dice_bridge.crud import DEFAULT_CATALOG
from dice_bridge.models.dc_models import CatalogDie, DiceStyle, DiceType


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def catalog():
    return list(DEFAULT_CATALOG)


@pytest.fixture
def small_catalog():
    return [
        CatalogDie(id="base", style=DiceStyle.MYZBASE, type=DiceType.D6, position=0),
        CatalogDie(id="skill", style=DiceStyle.MYZSKILL, type=DiceType.D6, position=1),
        CatalogDie(id="galaxy-d6", style=DiceStyle.GALAXY, type=DiceType.D6, position=2),
        CatalogDie(id="galaxy-d20", style=DiceStyle.GALAXY, type=DiceType.D20, position=3),
    ]
