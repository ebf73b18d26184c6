import logging
from contextlib import contextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from filevault.config import Settings
from filevault.exceptions import StoreFailure

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import filevault.models.file  # noqa: F401
    import filevault.models.user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@contextmanager
def record_store_call(action: str):
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception("Record store %s failed", action)
        raise StoreFailure(f"Record store {action} failed") from e


async def commit_or_fail(session: AsyncSession, action: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Record store %s failed", action)
        raise StoreFailure(f"Record store {action} failed") from e


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_maker() as session:
        yield session
