# db.py

#============================================================#
#                         Crewboard                          #
#============================================================#
# Purpose     : Engine and session factory. Any SQLAlchemy   #
#               URL works; SQLite gets foreign keys turned   #
#               on and a shared pool for in-memory use.      #
#============================================================#

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401  (registers tables on SQLModel.metadata)
from services.errors import Unavailable
from settings import Settings, load_settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str, timeout: float = 5.0, echo: bool = False) -> Engine:
    """Create an engine whose connection and pool waits are bounded by ``timeout``."""
    if database_url.startswith("sqlite"):
        connect_args = {"timeout": timeout, "check_same_thread": False}
        kwargs = {}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, connect_args=connect_args, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args=server_connect_args(database_url, timeout),
    )


def server_connect_args(database_url: str, timeout: float) -> dict:
    """Driver arguments bounding connects and, where the server allows it,
    statements and lock waits. A cancelled statement surfaces as
    ``OperationalError``, which the session factory reports as ``Unavailable``."""
    seconds = max(1, int(timeout))
    millis = max(1, int(timeout * 1000))
    backend = make_url(database_url).get_backend_name()
    if backend == "postgresql":
        return {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={millis} -c lock_timeout={millis}",
        }
    return {"connect_timeout": seconds}


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


@lru_cache(maxsize=1)
def default_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or load_settings()
    engine = make_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(engine)
    return engine


class SessionFactory:
    """Opens sessions on one engine and turns driver failures into ``Unavailable``."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def __call__(self) -> Iterator[Session]:
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
        except IntegrityError:
            session.rollback()
            raise
        except (OperationalError, PoolTimeoutError, DBAPIError) as exc:
            session.rollback()
            logger.exception("Storage failure: %s", type(exc).__name__)
            raise Unavailable() from exc
        finally:
            session.close()

