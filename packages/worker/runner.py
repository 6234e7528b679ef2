from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence

from packages.core.errors import StepFailedError
from packages.core.steps import FailurePolicy, PipelineStep, StepOutcome

logger = logging.getLogger(__name__)


class Runner(Protocol):
    def run(
        self,
        args: Sequence[str] | str,
        *,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        shell: bool = False,
        check: bool = True,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess: ...


class CommandRunner:
    """Run external commands with a pipeline-scoped environment."""

    def __init__(self, env: Mapping[str, str] | None = None):
        self.env = dict(env or {})

    def run(
        self,
        args: Sequence[str] | str,
        *,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        shell: bool = False,
        check: bool = True,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess:
        merged = os.environ.copy()
        merged.update(self.env)
        merged.update(env or {})
        merged.setdefault("GIT_TERMINAL_PROMPT", "0")
        if not shell:
            args = list(args)
        logger.debug("$ %s (cwd=%s)", args, cwd)
        return subprocess.run(
            args,
            cwd=str(cwd),
            env=merged,
            shell=shell,
            check=check,
            capture_output=capture_output,
            text=True,
        )


class Git:
    """git bound to one working tree."""

    def __init__(
        self, cwd: str | Path, runner: Runner, env: Mapping[str, str] | None = None
    ):
        self.cwd = Path(cwd)
        self.runner = runner
        self.env = dict(env or {})

    def __call__(self, *args: str) -> None:
        self.runner.run(["git", *args], cwd=self.cwd, env=self.env, check=True)

    def succeeds(self, *args: str) -> bool:
        proc = self.runner.run(["git", *args], cwd=self.cwd, env=self.env, check=False)
        return proc.returncode == 0

    def output(self, *args: str) -> str:
        proc = self.runner.run(
            ["git", *args],
            cwd=self.cwd,
            env=self.env,
            check=True,
            capture_output=True,
        )
        return (proc.stdout or "").strip()


def run_steps(
    steps: Iterable[PipelineStep],
    runner: Runner,
    cwd: str | Path,
    env: Mapping[str, str] | None = None,
) -> list[StepOutcome]:
    """Execute steps in order, stopping at the first failing abort-policy step."""
    outcomes: list[StepOutcome] = []
    for step in steps:
        logger.info("Running step %s: %s", step.name, step.command)
        args = step.command if step.shell else step.argv()
        try:
            proc = runner.run(args, cwd=cwd, env=env, shell=step.shell, check=False)
            returncode = proc.returncode
        except FileNotFoundError:
            returncode = 127
        outcome = StepOutcome(step=step, returncode=returncode)
        outcomes.append(outcome)
        if outcome.ok:
            continue
        if step.policy is FailurePolicy.CONTINUE:
            logger.warning(
                "Step %s exited with %s; continuing", step.name, returncode
            )
            continue
        raise StepFailedError(step, returncode)
    return outcomes


__all__ = ["CommandRunner", "Git", "Runner", "run_steps"]
