"""
DataBank Database Base — SQLAlchemy declarative base, mixins and engine factory.

Provides:
- Base: SQLAlchemy declarative base for all DataBank models
- CreatedAtMixin: created_at column
- utcnow: timestamp default used by every table
- build_engine: engine factory with SQLite and pool handling
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all DataBank models."""
    pass


class CreatedAtMixin:
    """Adds a created_at column."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


def build_engine(
    url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    echo: bool = False,
    **kwargs: Any,
) -> Engine:
    """
    Create an engine for ``url``.

    Server databases get a sized connection pool. SQLite gets no pool
    sizing, a single shared connection when in-memory, and a connect hook
    that turns on foreign key enforcement for the RESTRICT/CASCADE rules.
    """
    if _is_sqlite(url):
        sqlite_kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if _is_memory_sqlite(url):
            sqlite_kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **sqlite_kwargs, **kwargs)

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
        **kwargs,
    )
