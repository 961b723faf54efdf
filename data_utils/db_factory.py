from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session

from data_utils.settings import DatabaseSettings

# Global storage
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_db_url(original_dsn: str) -> str:
    url = make_url(original_dsn)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg")
    return url.render_as_string(hide_password=False)


def init_db(settings: DatabaseSettings):
    global _engine, _SessionLocal
    if _engine:
        return

    db_url = get_db_url(settings.database_url)
    engine_kwargs = {"pool_pre_ping": True}
    if not db_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10)

    _engine = create_engine(db_url, **engine_kwargs)

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=_engine
    )


def bind_engine(engine: Engine):
    """Use an externally created engine (tests, scripts)."""
    global _engine, _SessionLocal
    _engine = engine
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db(settings) first.")
    return _engine


def get_session() -> Session:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db(settings) first.")
    return _SessionLocal()


@contextmanager
def get_db_context(settings: Optional[DatabaseSettings] = None) -> Generator[Session, None, None]:
    """
    Context manager for python 'with' statements.

    Usage:
        with get_db_context(settings) as session:
            session.execute(...)
    """
    if _SessionLocal is None:
        init_db(settings or DatabaseSettings())

    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
