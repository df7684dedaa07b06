"""
ShelfSense Database Session Management

Async SQLAlchemy engine, session factory, and the declarative base.
Constraint names follow a fixed convention so Alembic autogenerate
produces stable diffs across Postgres and SQLite.
"""

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import get_settings

settings = get_settings()

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def build_engine(database_url: str, **overrides):
    """Engine factory shared by the API process and the sweep worker."""
    options = {"echo": settings.database_echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=10)
    options.update(overrides)
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all ShelfSense models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
