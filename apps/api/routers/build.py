from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from apps.api import jobs, schemas
from apps.api.deps import get_db, require_admin
from packages.db import ensure_build_state
from packages.worker.build.pipeline import recent_runs

router = APIRouter(prefix="/build", tags=["build"])


@router.get("/status", response_model=schemas.BuildStateResponse)
def get_status(session: Session = Depends(get_db)):
    state = ensure_build_state(session)
    return schemas.BuildStateResponse.model_validate(state)


@router.get("/runs", response_model=list[schemas.PipelineRunResponse])
def list_runs(
    limit: int = Query(default=20, ge=1, le=200), session: Session = Depends(get_db)
):
    return [
        schemas.PipelineRunResponse.model_validate(run)
        for run in recent_runs(session, limit=limit)
    ]


@router.post(
    "/trigger",
    response_model=schemas.TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_build(
    background: BackgroundTasks,
    branch: str | None = None,
    _admin: str = Depends(require_admin),
) -> schemas.TriggerResponse:
    jobs.enqueue_pipeline_run(background, branch=branch, trigger="manual")
    return schemas.TriggerResponse(accepted=True, branch=branch)
