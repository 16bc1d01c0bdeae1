"""Async SQLAlchemy engine and session factory."""

import logging
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import get_settings
from db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine; hands out short-lived sessions.

    Each caller opens its own session so independent queries can run
    concurrently on separate connections.
    """

    def __init__(self, url: str | None = None, echo: bool | None = None) -> None:
        settings = get_settings()
        self.url = url or settings.database_url
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=settings.database_echo if echo is None else echo,
        )
        self._sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)

    def session(self) -> AsyncSession:
        """Open a new session. Use as ``async with db.session() as session``."""
        return self._sessionmaker()

    async def create_all(self) -> None:
        """Create any missing tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def health_check(self) -> dict[str, Any]:
        """Check database connectivity.

        Returns:
            Dict with status and latency_ms, or status and error.
        """
        try:
            start_time = time.time()
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency = (time.time() - start_time) * 1000
            return {"status": "healthy", "latency_ms": round(latency, 2)}
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return {"status": "unhealthy", "error": str(e)}
