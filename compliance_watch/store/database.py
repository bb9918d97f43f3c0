"""Database connection management for the monitoring store."""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from compliance_watch.store.models import Base

DEFAULT_DATABASE_URL = "sqlite:///compliance_watch.db"


def get_database_url(database_url: str | None = None) -> str:
    return database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL


class DatabaseManager:
    """Lazily-built engine and session factory for sqlite or PostgreSQL URLs."""

    def __init__(
        self,
        database_url: str | None = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        self._database_url = get_database_url(database_url)
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

    @property
    def url(self) -> str:
        return self._database_url

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            # sqlite does not take pool_size / max_overflow
            if self._database_url.startswith("sqlite"):
                self._engine = create_engine(
                    self._database_url,
                    echo=self._echo,
                    connect_args={"timeout": 30},
                )
            else:
                self._engine = create_engine(
                    self._database_url,
                    pool_size=self._pool_size,
                    max_overflow=self._max_overflow,
                    echo=self._echo,
                    pool_pre_ping=True,
                )
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session that commits on success and rolls back on any exception."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self) -> None:
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
