from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from packages.core.errors import CIConfigError
from packages.core.steps import FailurePolicy, PipelineStep

PHASES = ("dependencies", "test")
SECTIONS = ("pre", "override", "post")


class StepSpec(BaseModel):
    """Typed form of a command entry: `{name, command, on_failure}`."""

    name: Optional[str] = None
    command: str
    on_failure: FailurePolicy = FailurePolicy.ABORT


CommandEntry = Union[str, StepSpec]


class PhaseConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pre: List[CommandEntry] = Field(default_factory=list)
    override: List[CommandEntry] = Field(default_factory=list)
    post: List[CommandEntry] = Field(default_factory=list)

    @field_validator("pre", "override", "post", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class DeploymentTarget(BaseModel):
    model_config = ConfigDict(extra="ignore")

    branch: List[str]
    commands: List[CommandEntry] = Field(default_factory=list)

    @field_validator("branch", mode="before")
    @classmethod
    def _branch_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    def matches(self, branch: str) -> bool:
        for pattern in self.branch:
            if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
                if re.fullmatch(pattern[1:-1], branch):
                    return True
            elif pattern == branch:
                return True
        return False


class MachineConfig(BaseModel):
    timezone: Optional[str] = None
    toolchains: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_toolchains(cls, data: Any) -> Any:
        # circle.yml puts toolchains beside timezone: `machine.ghc.version`.
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("machine must be a mapping")
        toolchains = {}
        for key, value in data.items():
            if key == "timezone":
                continue
            if key == "toolchains" and isinstance(value, dict):
                toolchains.update({str(k): str(v) for k, v in value.items()})
            elif isinstance(value, dict) and "version" in value:
                toolchains[str(key)] = str(value["version"])
        timezone = data.get("timezone")
        return {
            "timezone": str(timezone).strip() if timezone else None,
            "toolchains": toolchains,
        }


class CIConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    machine: MachineConfig = Field(default_factory=MachineConfig)
    dependencies: PhaseConfig = Field(default_factory=PhaseConfig)
    test: PhaseConfig = Field(default_factory=PhaseConfig)
    deployment: Dict[str, DeploymentTarget] = Field(default_factory=dict)

    @field_validator("dependencies", "test", "deployment", mode="before")
    @classmethod
    def _none_is_default(cls, value: Any) -> Any:
        return {} if value is None else value

    def deployments_for(self, branch: str) -> list[tuple[str, DeploymentTarget]]:
        return [
            (env, target)
            for env, target in self.deployment.items()
            if target.matches(branch)
        ]

    def plan(self, branch: str) -> list[PipelineStep]:
        """Return the ordered steps a push to `branch` executes.

        Deployment commands are included only for environments whose branch
        matches; every other branch gets the dependency and test phases only.
        """
        steps: list[PipelineStep] = []
        for phase in PHASES:
            phase_config: PhaseConfig = getattr(self, phase)
            for section in SECTIONS:
                entries = getattr(phase_config, section)
                steps.extend(_to_steps(f"{phase}.{section}", phase, entries))
        for env, target in self.deployments_for(branch):
            steps.extend(
                _to_steps(f"deployment.{env}", "deployment", target.commands)
            )
        return steps


def _to_steps(
    prefix: str, phase: str, entries: list[CommandEntry]
) -> list[PipelineStep]:
    steps = []
    for i, entry in enumerate(entries):
        if isinstance(entry, StepSpec):
            steps.append(
                PipelineStep(
                    name=entry.name or f"{prefix}[{i}]",
                    phase=phase,
                    command=entry.command,
                    policy=entry.on_failure,
                    shell=True,
                )
            )
        else:
            steps.append(
                PipelineStep(
                    name=f"{prefix}[{i}]", phase=phase, command=str(entry), shell=True
                )
            )
    return steps


def parse_ci_config(text: str) -> CIConfig:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CIConfigError(f"CI descriptor is not valid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise CIConfigError("CI descriptor root must be a mapping")
    try:
        return CIConfig.model_validate(data)
    except ValidationError as exc:
        raise CIConfigError(f"Invalid CI descriptor: {exc}") from exc


def load_ci_config(path: str | Path) -> CIConfig:
    descriptor = Path(path)
    if not descriptor.exists():
        raise CIConfigError(f"CI descriptor not found: {descriptor}")
    return parse_ci_config(descriptor.read_text(encoding="utf-8"))


__all__ = [
    "CIConfig",
    "DeploymentTarget",
    "MachineConfig",
    "PhaseConfig",
    "StepSpec",
    "load_ci_config",
    "parse_ci_config",
]
