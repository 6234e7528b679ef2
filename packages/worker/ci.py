from __future__ import annotations

import logging
from pathlib import Path

from packages.core.ci_config import CIConfig
from packages.core.steps import StepOutcome
from packages.worker.runner import CommandRunner, Runner, run_steps

logger = logging.getLogger(__name__)


def run_descriptor(
    ci: CIConfig,
    branch: str,
    cwd: str | Path = ".",
    runner: Runner | None = None,
) -> list[StepOutcome]:
    """Run a CI descriptor for a push to `branch`, the way the CI host would."""
    env = {"TZ": ci.machine.timezone} if ci.machine.timezone else {}
    runner = runner or CommandRunner(env=env)
    steps = ci.plan(branch)
    deployments = [name for name, _ in ci.deployments_for(branch)]
    if deployments:
        logger.info("Branch %s deploys to: %s", branch, ", ".join(deployments))
    else:
        logger.info("Branch %s matches no deployment; running build phases only", branch)
    return run_steps(steps, runner, cwd=cwd, env=env)


__all__ = ["run_descriptor"]
