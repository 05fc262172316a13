from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from dice_bridge.create_sqlite_engine import engine
from dice_bridge.crud import DEFAULT_CATALOG, CreateData, ReadData
from dice_bridge.db import Session
from dice_bridge.integration import DiceIntegration
from dice_bridge.load_settings import redis_host, redis_port
from dice_bridge.routers import roll

logging.basicConfig(level=logging.INFO)

redis = Redis(host=redis_host, port=redis_port, decode_responses=True, health_check_interval=30)


def create_app(
    redis: Redis,
    engine: AsyncEngine = engine,
    Session: async_sessionmaker = Session,
    **integration_options,
) -> FastAPI:
    scheduler = AsyncIOScheduler()
    integration = DiceIntegration(redis, scheduler=scheduler, **integration_options)

    @asynccontextmanager
    async def lifespan(app):
        """Seed the local dice catalog and mount the dice integration.
        Everything is torn down when the server stops.
        """
        await CreateData.create_table(engine)
        async with Session() as session:
            await CreateData.create_default_dice_data(DEFAULT_CATALOG, session)
        async with Session() as session:
            catalog = await ReadData.read_dice_data(session)

        scheduler.start()
        await integration.start(catalog)
        try:
            yield
        finally:
            await integration.stop()
            scheduler.shutdown(wait=False)
            logging.info("Stop Server")

    app = FastAPI(lifespan=lifespan)
    app.state.integration = integration
    app.include_router(roll.roll_router)
    return app


app = create_app(redis)