from packages.db.engine import SessionLocal, engine, session_scope
from packages.db.models import (
    Base,
    BuildState,
    PipelineRun,
    RunStatus,
    create_all,
    ensure_build_state,
)

__all__ = [
    "SessionLocal",
    "engine",
    "session_scope",
    "Base",
    "BuildState",
    "PipelineRun",
    "RunStatus",
    "create_all",
    "ensure_build_state",
]
