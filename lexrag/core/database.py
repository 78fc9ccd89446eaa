"""Database engine factory for the local key-value blob store."""

from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a synchronous engine for ``database_url``.

    In-memory SQLite databases are pinned to a single connection so every
    session sees the same data.
    """
    if _is_memory_sqlite(database_url):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    # Import models so SQLModel.metadata is populated
    import lexrag.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
