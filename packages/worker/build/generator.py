from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass

from packages.core.content import load_content_tree
from packages.core.digest import tree_digest
from packages.core.errors import BuildError, StepFailedError
from packages.core.steps import steps_from_commands
from packages.worker.build.config import PipelineConfig
from packages.worker.runner import Git, Runner, run_steps
from packages.worker.site_repo import SiteRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildResult:
    documents: int
    output_digest: str


def prime_output_tree(
    repo: SiteRepo, publish_branch: str, runner: Runner, env: dict[str, str]
) -> None:
    """Check out the previously published tree so the generator builds on top of it."""
    outer = Git(repo.root, runner, env)
    try:
        outer("submodule", "init")
        outer("submodule", "update")
        Git(repo.output_dir, runner, env)("checkout", publish_branch)
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise BuildError(
            f"Could not prepare {repo.output_rel}/ on branch {publish_branch}: {exc}"
        ) from exc


def run_generator(
    repo: SiteRepo, command: str, runner: Runner, env: dict[str, str]
) -> None:
    """Invoke the static-site generator's build routine."""
    try:
        runner.run(shlex.split(command), cwd=repo.root, env=env, check=True)
    except FileNotFoundError as exc:
        raise BuildError(
            f"Generator command not found: {command}. Install it and ensure it is on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        raise BuildError(
            f"Generator failed with exit code {exc.returncode}: {command}"
        ) from exc


def run_build_stage(
    repo: SiteRepo, config: PipelineConfig, runner: Runner
) -> BuildResult:
    env = config.environment()

    tree = load_content_tree(
        repo.root, config.content_patterns, exclude=[repo.output_dir]
    )
    logger.info("Validated %s source document(s)", len(tree))

    try:
        run_steps(
            steps_from_commands("build", config.compile_commands),
            runner,
            cwd=repo.root,
            env=env,
        )
    except StepFailedError as exc:
        raise BuildError(str(exc)) from exc

    prime_output_tree(repo, config.publish_branch, runner, env)
    if config.clean_output:
        logger.info("Cleaning %s/ before render", repo.output_rel)
        repo.clean_output_tree()

    logger.info("Rendering site: %s", config.generator_command)
    run_generator(repo, config.generator_command, runner, env)

    digest = tree_digest(repo.output_dir)
    logger.info("Output tree digest %s", digest)
    return BuildResult(documents=len(tree), output_digest=digest)


__all__ = ["BuildResult", "prime_output_tree", "run_build_stage", "run_generator"]
