from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dice_bridge.create_sqlite_engine import engine

# Centralized session factory for the local dice catalog.
Session = async_sessionmaker(
    autocommit=False,
    class_=AsyncSession,
    autoflush=True,
    bind=engine,
)
