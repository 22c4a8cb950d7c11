import ssl
import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from dompet.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

db_url = settings.ASYNC_DATABASE_URL
if not db_url:
    # Local development falls back to a SQLite file next to the working directory
    logger.warning("DATABASE_URL not set. Using local SQLite database (dompet.db).")
    db_url = "sqlite+aiosqlite:///./dompet.db"

# Hosted Postgres (Supabase, Neon, Render) often ships certs we cannot verify
ssl_context = ssl.create_default_context()
ssl_context.check_hostname = False
ssl_context.verify_mode = ssl.CERT_NONE


def _build_engine_kwargs(url: str) -> dict:
    if "sqlite" in url:
        return {"connect_args": {"check_same_thread": False}}

    connect_args = {"statement_cache_size": 0}

    url_str = url.lower()
    cloud_domains = ["supabase", "render.com", "neon.tech", "aws.com", "azure.com", "dpg-"]
    is_cloud_db = any(domain in url_str for domain in cloud_domains)
    is_local = "localhost" in url_str or "127.0.0.1" in url_str

    if is_cloud_db or (settings.ENVIRONMENT != "local" and not is_local):
        logger.info("DATABASE: Enforcing SSL (Cloud/Production DB detected)")
        connect_args["ssl"] = ssl_context
    else:
        logger.info("DATABASE: SSL Disabled (Local/Dev DB detected)")

    connect_args["timeout"] = 30
    connect_args["command_timeout"] = 30

    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 10,
        "max_overflow": 20,
        "connect_args": connect_args,
    }


try:
    engine = create_async_engine(db_url, echo=False, **_build_engine_kwargs(db_url))
except Exception as e:
    logger.critical(f"Failed to create database engine: {e}")
    raise

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
