import logging
import os

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request, status
from pydantic import ValidationError

from apps.api import jobs, schemas
from packages.core.auth import verify_signature
from packages.core.errors import PipelineError
from packages.worker.build import load_pipeline_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hooks", tags=["hooks"])


@router.post("/push", response_model=schemas.TriggerResponse)
async def on_push(
    request: Request,
    background: BackgroundTasks,
    signature: str | None = Header(default=None, alias="X-Hub-Signature-256"),
) -> schemas.TriggerResponse:
    body = await request.body()
    secret = os.getenv("PAGESMITH_WEBHOOK_SECRET")
    if secret and not verify_signature(secret, body, signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )
    try:
        event = schemas.PushEvent.model_validate_json(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422, detail="Invalid push payload"
        ) from exc

    branch = event.branch
    if branch is None:
        return schemas.TriggerResponse(
            accepted=False, reason=f"{event.ref} is not a branch"
        )
    if event.deleted:
        return schemas.TriggerResponse(
            accepted=False, branch=branch, reason=f"branch {branch} was deleted"
        )
    try:
        marker = load_pipeline_config().skip_marker
    except PipelineError as exc:
        logger.error("Cannot handle push to %s: %s", branch, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Pipeline configuration is invalid: {exc}",
        ) from exc
    if event.head_commit and marker in event.head_commit.message:
        logger.info("Ignoring push to %s: head commit carries %s", branch, marker)
        return schemas.TriggerResponse(
            accepted=False, branch=branch, reason=f"commit message contains {marker}"
        )

    jobs.enqueue_pipeline_run(background, branch=branch, trigger="push")
    return schemas.TriggerResponse(accepted=True, branch=branch)
