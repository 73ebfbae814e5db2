import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from models import Base

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = "HS256"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
DEBUG = ENVIRONMENT == "dev"


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


if DATABASE_URL and _is_sqlite(DATABASE_URL):
    # Local development and tests. One connection per session checkout so
    # background tasks never share a connection with the request session.
    sync_engine = create_engine(DATABASE_URL.replace("sqlite+aiosqlite://", "sqlite://"))

    async_engine = create_async_engine(
        DATABASE_URL,
        echo=False,
        poolclass=NullPool,
        connect_args={"check_same_thread": False}
    )
elif DATABASE_URL:
    sync_engine = create_engine(DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://"))

    asyncpg_url = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    if "?" in asyncpg_url:
        base_url = asyncpg_url.split("?")[0]
    else:
        base_url = asyncpg_url

    asyncpg_url = f"{base_url}?prepared_statement_cache_size=0"

    async_engine = create_async_engine(
        asyncpg_url,
        echo=False,
        pool_pre_ping=False,
        pool_size=5,
        max_overflow=0
    )
else:
    sync_engine = None
    async_engine = None

if async_engine is not None:
    AsyncSessionLocal = sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
else:
    AsyncSessionLocal = None


async def get_db():
    if AsyncSessionLocal is None:
        raise Exception("Database not configured")
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory():
    """Session factory for work that runs outside a request, e.g. background tasks"""
    if AsyncSessionLocal is None:
        raise Exception("Database not configured")
    return AsyncSessionLocal


async def init_db():
    if async_engine is None:
        raise Exception("Database not configured")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_sync_engine():
    if sync_engine is None:
        raise Exception("Database not configured")
    return sync_engine
