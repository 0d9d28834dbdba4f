from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import DATABASE_URL, DB_ECHO, SCHEMA_SEARCH_PATH


class Base(DeclarativeBase):
    pass


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def make_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO, **kwargs) -> AsyncEngine:
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("postgresql+asyncpg") and SCHEMA_SEARCH_PATH:
        connect_args.setdefault("server_settings", {"search_path": SCHEMA_SEARCH_PATH})
    return create_async_engine(url, echo=echo, connect_args=connect_args, **kwargs)


engine = make_engine()


async def create_db_and_tables(bind: AsyncEngine = engine):

    from .models import exam_model, question_model, student_model, progress_model  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


