from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column


class Base(DeclarativeBase):
    pass


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineRun(Base):
    __tablename__ = "pipeline_run"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trigger: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    branch: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=RunStatus.RUNNING.value
    )
    failed_stage: Mapped[str | None] = mapped_column(String, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    documents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_digest: Mapped[str | None] = mapped_column(String, nullable=True)
    nested_commit: Mapped[str | None] = mapped_column(String, nullable=True)
    outer_commit: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=now_utc, nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class BuildState(Base):
    __tablename__ = "build_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_build_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_build_commit: Mapped[str | None] = mapped_column(String, nullable=True)
    last_outer_commit: Mapped[str | None] = mapped_column(String, nullable=True)
    last_output_digest: Mapped[str | None] = mapped_column(String, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set when the site was pushed but the outer repo still points at the old tree.
    pointer_stale: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )


def ensure_build_state(session: Session) -> BuildState:
    """Guarantee there is a singleton build_state row with id=1."""
    state = session.get(BuildState, 1)
    if state:
        return state
    state = BuildState(id=1, pointer_stale=False)
    session.add(state)
    session.commit()
    session.refresh(state)
    return state


def create_all(engine: Engine) -> None:
    """Create tables and ensure singleton rows."""
    Base.metadata.create_all(engine)
