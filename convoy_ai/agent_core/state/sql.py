from __future__ import annotations

"""SQLAlchemy async key/value client.

Usage
-----

- Create an async engine with ``create_engine`` (Postgres URLs are normalised
  to ``asyncpg``; ``sqlite+aiosqlite`` works for tests and local use).
- Build ``SqlKeyValueClient`` with a session factory from ``create_sessionmaker``.

The table is created on first use. Each operation opens its own session and
commits, so every write is durable when the call returns.
"""

import asyncio
import re
import time
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base, KeyValueRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class SqlKeyValueClient:
    provider = "sql"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = create_sessionmaker(engine)
        self._ready = False
        self._ready_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, db_url: str) -> "SqlKeyValueClient":
        return cls(create_engine(db_url))

    async def _ensure_table(self) -> None:
        if self._ready:
            return
        async with self._ready_lock:
            if not self._ready:
                await create_all(self._engine)
                self._ready = True

    async def get(self, key: str) -> Optional[str]:
        await self._ensure_table()
        async with self._session_factory() as s:
            row = (await s.execute(select(KeyValueRow).where(KeyValueRow.key == key))).scalar_one_or_none()
            if row is None:
                return None
            if row.expires_at is not None and row.expires_at <= time.time():
                await s.delete(row)
                await s.commit()
                return None
            return row.value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._ensure_table()
        expires_at = time.time() + ttl if ttl else None
        async with self._session_factory() as s:
            await s.merge(KeyValueRow(key=key, value=value, expires_at=expires_at))
            await s.commit()

    async def delete(self, key: str) -> None:
        await self._ensure_table()
        async with self._session_factory() as s:
            await s.execute(delete(KeyValueRow).where(KeyValueRow.key == key))
            await s.commit()

    async def aclose(self) -> None:
        await self._engine.dispose()
