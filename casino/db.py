from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from casino.load_secrets import database_url, host


def create_engine() -> AsyncEngine:
    """Pick the configured database engine.

    DATABASE_URL wins, then Postgres when DB_HOST is set, then the local SQLite file.
    """
    if database_url:
        return create_async_engine(database_url)
    if host:
        from casino.create_postgres_engine import create_postgres_engine

        return create_postgres_engine()
    from casino.create_sqlite_engine import create_sqlite_engine

    return create_sqlite_engine()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Centralized session factory to avoid creating it in router modules.
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        expire_on_commit=False,
        bind=engine,
    )
