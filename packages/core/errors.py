from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every fatal pipeline failure."""

    stage = "pipeline"


class ConfigError(PipelineError):
    stage = "config"


class CIConfigError(ConfigError):
    """Raised when a CI descriptor cannot be parsed into a plan."""


class StepFailedError(PipelineError):
    def __init__(self, step, returncode: int):
        self.step = step
        self.returncode = returncode
        super().__init__(
            f"Step {step.name!r} failed with exit code {returncode}: {step.command}"
        )

    @property
    def stage(self) -> str:  # type: ignore[override]
        return self.step.phase


class DependencyResolutionError(PipelineError):
    stage = "dependencies"


class ContentError(PipelineError):
    stage = "build"

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class BuildError(PipelineError):
    stage = "build"


class PublishError(PipelineError):
    stage = "publish"


class NestedPublishError(PublishError):
    stage = "publish-nested"


class OuterPublishError(PublishError):
    """The output tree was pushed but the outer pointer was not."""

    stage = "publish-outer"

    def __init__(self, message: str, nested_commit: str | None = None):
        self.nested_commit = nested_commit
        super().__init__(message)


__all__ = [
    "PipelineError",
    "ConfigError",
    "CIConfigError",
    "StepFailedError",
    "DependencyResolutionError",
    "ContentError",
    "BuildError",
    "PublishError",
    "NestedPublishError",
    "OuterPublishError",
]
