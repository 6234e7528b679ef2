import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = "var/db/pagesmith.db"


def get_database_url() -> str:
    """Return SQLAlchemy database URL from PAGESMITH_DB_PATH (a path or a URL)."""
    db_path = os.getenv("PAGESMITH_DB_PATH", DEFAULT_DB_PATH)
    if "://" in db_path:
        return db_path
    path = Path(db_path)
    if path.suffix:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"


def make_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Pipeline runs are recorded from worker threads, not the request thread.
        connect_args["check_same_thread"] = False
    return create_engine(url, future=True, connect_args=connect_args)


engine = make_engine(get_database_url())
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
