from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from sitecraft.platform.config import Settings


def _sync_url(database_url: str) -> str:
    # Workers and the API share one sync engine; accept async URLs from older .env files
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql+psycopg2://")
    if database_url.startswith("sqlite+aiosqlite://"):
        return database_url.replace("sqlite+aiosqlite://", "sqlite://")
    return database_url


def create_db_engine(settings: Settings) -> Engine:
    url = _sync_url(settings.DATABASE_URL)

    if url.startswith("sqlite"):
        # Writers wait on the file lock instead of failing immediately
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": settings.DB_POOL_TIMEOUT},
        )

    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

