"""
Database engine and session management
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL uses an async driver"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in DATABASE__URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


engine = create_async_engine(
    _build_async_url(settings.database.url),
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """Create every mapped table (development only; use Alembic elsewhere)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

