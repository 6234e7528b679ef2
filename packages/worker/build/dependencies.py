from __future__ import annotations

import logging
import re
import subprocess

from packages.core.errors import DependencyResolutionError, StepFailedError
from packages.core.steps import steps_from_commands
from packages.worker.build.config import PipelineConfig
from packages.worker.runner import Runner, run_steps
from packages.worker.site_repo import SiteRepo

logger = logging.getLogger(__name__)


def _reports_version(reported: str, version: str) -> bool:
    # Whole version token only: a pin of 7.1 must not match 7.10.2.
    pattern = rf"(?<![\d.]){re.escape(version)}(?![\d.]*\d)"
    return re.search(pattern, reported) is not None


def verify_toolchain(
    repo: SiteRepo, toolchain: str, version: str, runner: Runner, env: dict[str, str]
) -> str:
    """Check that `<toolchain> --version` reports the pinned version."""
    try:
        proc = runner.run(
            [toolchain, "--version"],
            cwd=repo.root,
            env=env,
            check=True,
            capture_output=True,
        )
    except FileNotFoundError as exc:
        raise DependencyResolutionError(
            f"Toolchain `{toolchain}` not found. Install it and ensure it is on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        raise DependencyResolutionError(
            f"`{toolchain} --version` failed with exit code {exc.returncode}"
        ) from exc
    reported = (proc.stdout or "").strip()
    if not _reports_version(reported, version):
        raise DependencyResolutionError(
            f"Toolchain `{toolchain}` is pinned to {version} but reports: {reported or '<empty>'}"
        )
    return reported


def resolve_dependencies(
    repo: SiteRepo, config: PipelineConfig, runner: Runner
) -> None:
    """Fetch and pin generator dependencies; any failure stops the pipeline here."""
    logger.info("Resolving dependencies in %s", repo.root)
    env = config.environment()

    if config.manifest_glob:
        manifests = repo.manifest_files(config.manifest_glob)
        if not manifests:
            raise DependencyResolutionError(
                f"No dependency manifest matching {config.manifest_glob!r} in {repo.root}"
            )
        logger.info("Using manifest(s): %s", ", ".join(p.name for p in manifests))

    if config.toolchain_version:
        reported = verify_toolchain(
            repo, config.toolchain, config.toolchain_version, runner, env
        )
        logger.info("Toolchain %s: %s", config.toolchain, reported)

    steps = steps_from_commands("dependencies", config.dependency_commands)
    try:
        run_steps(steps, runner, cwd=repo.root, env=env)
    except StepFailedError as exc:
        raise DependencyResolutionError(str(exc)) from exc


__all__ = ["resolve_dependencies", "verify_toolchain"]
