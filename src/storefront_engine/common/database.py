"""Async database manager for Storefront-Engine (single-DB)."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront_engine.common.config import StorefrontSettings, get_settings
from storefront_engine.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import storefront_engine.catalog.models  # noqa: F401
import storefront_engine.discounts.models  # noqa: F401
import storefront_engine.purchases.models  # noqa: F401
import storefront_engine.licensing.models  # noqa: F401
import storefront_engine.payouts.models  # noqa: F401
import storefront_engine.audit.models  # noqa: F401


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: StorefrontSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        # Both aiosqlite and asyncpg accept a connect/lock timeout in seconds
        self.engine = create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": self._settings.db_timeout},
        )
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
