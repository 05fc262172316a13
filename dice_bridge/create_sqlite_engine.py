from sqlalchemy.ext.asyncio import create_async_engine

from dice_bridge.load_settings import catalog_db_path

sqlite_url = f"sqlite+aiosqlite:///{catalog_db_path}"


engine = create_async_engine(url=sqlite_url, echo=False)
