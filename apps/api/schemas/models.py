from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BuildStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    last_build_at: Optional[datetime] = None
    last_build_commit: Optional[str] = None
    last_outer_commit: Optional[str] = None
    last_output_digest: Optional[str] = None
    last_error: Optional[str] = None
    pointer_stale: bool = False


class PipelineRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    trigger: str
    branch: Optional[str] = None
    status: str
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    published: bool
    documents: Optional[int] = None
    output_digest: Optional[str] = None
    nested_commit: Optional[str] = None
    outer_commit: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class TriggerResponse(BaseModel):
    accepted: bool
    branch: Optional[str] = None
    reason: Optional[str] = None


class CommitInfo(BaseModel):
    id: Optional[str] = None
    message: str = ""


class PushEvent(BaseModel):
    ref: str
    after: Optional[str] = None
    deleted: bool = False
    head_commit: Optional[CommitInfo] = None
    commits: list[CommitInfo] = Field(default_factory=list)

    @property
    def branch(self) -> Optional[str]:
        prefix = "refs/heads/"
        if not self.ref.startswith(prefix):
            return None
        return self.ref[len(prefix) :]
