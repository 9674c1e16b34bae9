import ssl
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def prepare_database_url(database_url: str) -> tuple[str, dict]:
    """Return an asyncpg-compatible URL and the matching ``connect_args``.

    Neon/Supabase connection strings use postgresql:// with query params like
    sslmode=require and channel_binding=require that asyncpg doesn't accept
    via the URL. We strip them and pass SSL via connect_args. Other URLs
    (e.g. sqlite+aiosqlite) pass through untouched.
    """
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgres", "postgresql"):
        return database_url, {}

    query_params = parse_qs(parsed.query)
    needs_ssl = query_params.pop("sslmode", [None])[0] == "require"
    query_params.pop("channel_binding", None)

    clean_query = urlencode(query_params, doseq=True)
    url = urlunparse(parsed._replace(scheme="postgresql+asyncpg", query=clean_query))
    connect_args = {"ssl": ssl.create_default_context()} if needs_ssl else {}
    return url, connect_args


def create_engine(database_url: str) -> AsyncEngine:
    url, connect_args = prepare_database_url(database_url)
    return create_async_engine(
        url, echo=False, pool_pre_ping=True, connect_args=connect_args
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    # Imported for its side effect of registering the tables on Base.
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
