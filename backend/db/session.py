"""
PharmaDispatch Database Session Management

Async SQLAlchemy engine and session factory.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass


def build_session_factory(database_url: str, echo: bool = False):
    """Create (engine, session factory) for a worker process.

    Callers own the engine and must dispose it.
    """
    engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory
