from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from estate_assistant.config import get_settings

# Register tables on the metadata
from estate_assistant.db import models  # noqa: F401

SessionFactory = Callable[[], AsyncSession]


def create_engine_for(url: str) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, future=True)
    if url.startswith("sqlite+"):
        # SQLite leaves foreign keys (and ON DELETE CASCADE) off by default
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_session_factory(bind: AsyncEngine) -> SessionFactory:
    return sessionmaker(  # type: ignore[call-overload]
        bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=False, autocommit=False
    )


engine: AsyncEngine = create_engine_for(get_settings().database_url)
AsyncSessionLocal = make_session_factory(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def get_session(factory: SessionFactory = AsyncSessionLocal) -> AsyncIterator[AsyncSession]:
    session: AsyncSession = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
