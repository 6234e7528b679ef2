from apps.api.schemas.models import (
    BuildStateResponse,
    CommitInfo,
    PipelineRunResponse,
    PushEvent,
    TriggerResponse,
)

__all__ = [
    "BuildStateResponse",
    "CommitInfo",
    "PipelineRunResponse",
    "PushEvent",
    "TriggerResponse",
]
