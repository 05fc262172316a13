from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy import select
from typing import List
import logging

from dice_bridge.models.dc_models import CatalogDie, DiceStyle, DiceType
from dice_bridge.models.schemas import Base, Dice


DEFAULT_CATALOG: List[CatalogDie] = [
    CatalogDie(id="myz-base-d6", style=DiceStyle.MYZBASE, type=DiceType.D6, position=0),
    CatalogDie(id="myz-skill-d6", style=DiceStyle.MYZSKILL, type=DiceType.D6, position=1),
    CatalogDie(id="myz-gear-d6", style=DiceStyle.MYZGEAR, type=DiceType.D6, position=2),
    CatalogDie(id="galaxy-d4", style=DiceStyle.GALAXY, type=DiceType.D4, position=3),
    CatalogDie(id="galaxy-d6", style=DiceStyle.GALAXY, type=DiceType.D6, position=4),
    CatalogDie(id="galaxy-d8", style=DiceStyle.GALAXY, type=DiceType.D8, position=5),
    CatalogDie(id="galaxy-d10", style=DiceStyle.GALAXY, type=DiceType.D10, position=6),
    CatalogDie(id="galaxy-d12", style=DiceStyle.GALAXY, type=DiceType.D12, position=7),
    CatalogDie(id="galaxy-d20", style=DiceStyle.GALAXY, type=DiceType.D20, position=8),
    CatalogDie(id="galaxy-d100", style=DiceStyle.GALAXY, type=DiceType.D100, position=9),
]


class CreateData:
    @staticmethod
    async def create_table(engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @staticmethod
    async def create_default_dice_data(dice: List[CatalogDie], session: AsyncSession):
        """Seed the local catalog. Entries that already exist are left untouched

        Args:
            dice (List[CatalogDie]): Catalog entries with id, style, type and position
        """
        async with session:
            try:
                result = await session.execute(select(Dice.id))
                existing = set(result.scalars().all())
                for die in dice:
                    if die.id in existing:
                        continue
                    session.add(
                        Dice(
                            id=die.id,
                            style=die.style.value,
                            type=die.type.value,
                            position=die.position,
                        )
                    )
                await session.commit()
            except Exception as e:
                logging.error(f"Failed to create default dice data: {e}")


class ReadData:
    @staticmethod
    async def read_dice_data(session: AsyncSession) -> List[CatalogDie]:
        """Read the whole local catalog in its defined iteration order

        Returns:
            List[CatalogDie]: Catalog entries ordered by position, then id
        """
        async with session:
            try:
                stmt = select(Dice).order_by(Dice.position, Dice.id)
                result = await session.execute(stmt)
                return [CatalogDie.model_validate(row) for row in result.scalars().all()]
            except Exception as e:
                logging.error(f"Failed to read dice data: {e}")
                return []
