from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


@dataclass(frozen=True)
class PipelineStep:
    """A named command executed as one unit of a pipeline phase."""

    name: str
    phase: str
    command: str
    policy: FailurePolicy = FailurePolicy.ABORT
    shell: bool = False

    def argv(self) -> list[str]:
        return shlex.split(self.command)


@dataclass(frozen=True)
class StepOutcome:
    step: PipelineStep
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def steps_from_commands(
    phase: str, commands: Iterable[str], *, shell: bool = False
) -> list[PipelineStep]:
    """Wrap plain command strings as abort-on-failure steps named after their phase."""
    return [
        PipelineStep(name=f"{phase}[{i}]", phase=phase, command=cmd, shell=shell)
        for i, cmd in enumerate(commands)
    ]


__all__ = ["FailurePolicy", "PipelineStep", "StepOutcome", "steps_from_commands"]
