# app/db.py
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .config import DATABASE_URL

log = logging.getLogger(__name__)

Base = declarative_base()

_engine = None

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)


def _enable_sqlite_fk(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


# ── Engine setup ─────────────────────────────────
def init_db(url: str | None = None, *, create_tables: bool = False):
    """
    Bind the session factory to an engine.
    In-memory SQLite (tests) shares a single connection across sessions.
    """
    global _engine
    url = url or DATABASE_URL
    kwargs = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(_engine, "connect", _enable_sqlite_fk)

    SessionLocal.configure(bind=_engine)

    if create_tables:
        from . import models  # noqa: F401  (registers tables on Base.metadata)
        Base.metadata.create_all(_engine)

    # sanity ping
    with _engine.connect() as c:
        c.execute(text("SELECT 1"))
    log.info("[db] ready")
    return _engine


# ── Context managers ─────────────────────────────
@contextmanager
def get_session():
    """Provide a transactional scope: commit on success, rollback on error."""
    if _engine is None:
        init_db()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
