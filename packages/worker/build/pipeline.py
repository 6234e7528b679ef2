from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone

from packages.core.errors import OuterPublishError, PipelineError
from packages.db import BuildState, PipelineRun, RunStatus, ensure_build_state, session_scope
from packages.worker.build.config import PipelineConfig, load_pipeline_config
from packages.worker.build.dependencies import resolve_dependencies
from packages.worker.build.generator import BuildResult, run_build_stage
from packages.worker.build.publish import PublishResult, publish_output_tree
from packages.worker.runner import CommandRunner, Git, Runner
from packages.worker.site_repo import SiteRepo

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    run_id: int
    branch: str
    build: BuildResult
    publish: PublishResult | None = None

    @property
    def published(self) -> bool:
        return self.publish is not None


def _start_run(branch: str | None, trigger: str) -> int:
    with session_scope() as session:
        ensure_build_state(session)
        run = PipelineRun(trigger=trigger, branch=branch, status=RunStatus.RUNNING.value)
        session.add(run)
        session.flush()
        return run.id


def _sync_source(repo: SiteRepo, config: PipelineConfig, branch: str, runner: Runner) -> None:
    git = Git(repo.root, runner, config.environment())
    try:
        git("fetch", config.remote, branch)
        git("checkout", "-B", branch, "FETCH_HEAD")
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise PipelineError(f"Could not check out {branch}: {exc}") from exc


def _current_branch(repo: SiteRepo, runner: Runner) -> str:
    try:
        return Git(repo.root, runner).output("rev-parse", "--abbrev-ref", "HEAD")
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise PipelineError(f"Could not determine current branch: {exc}") from exc


def _record_failure(run_id: int, branch: str | None, exc: Exception) -> None:
    with session_scope() as session:
        run = session.get(PipelineRun, run_id)
        state = ensure_build_state(session)
        run.branch = branch
        run.status = RunStatus.FAILED.value
        run.failed_stage = getattr(exc, "stage", PipelineError.stage)
        run.error = str(exc) or type(exc).__name__
        run.finished_at = datetime.now(timezone.utc)
        state.last_error = run.error
        if isinstance(exc, OuterPublishError):
            run.nested_commit = exc.nested_commit
            run.published = True
            state.last_build_commit = exc.nested_commit
            state.pointer_stale = True


def _record_success(run_id: int, result: PipelineResult) -> None:
    with session_scope() as session:
        run = session.get(PipelineRun, run_id)
        state: BuildState = ensure_build_state(session)
        finished = datetime.now(timezone.utc)
        run.branch = result.branch
        run.status = RunStatus.SUCCEEDED.value
        run.documents = result.build.documents
        run.output_digest = result.build.output_digest
        run.finished_at = finished
        state.last_error = None
        state.last_build_at = finished
        state.last_output_digest = result.build.output_digest
        if result.publish is not None:
            run.published = True
            run.nested_commit = result.publish.nested_commit
            run.outer_commit = result.publish.outer_commit
            state.last_build_commit = result.publish.nested_commit
            state.last_outer_commit = result.publish.outer_commit
            state.pointer_stale = False


def run_publish_pipeline(
    branch: str | None = None,
    config: PipelineConfig | None = None,
    runner: Runner | None = None,
    trigger: str = "manual",
) -> PipelineResult:
    """Dependencies, build, then publish (deploy branch only). Stops at the first failure."""
    config = config or load_pipeline_config()
    runner = runner or CommandRunner(env=config.environment())
    repo = SiteRepo(config.site_root, output_dir=config.output_dir)

    run_id = _start_run(branch, trigger)
    try:
        if config.sync_source and branch:
            _sync_source(repo, config, branch, runner)
        branch = branch or _current_branch(repo, runner)
        logger.info("Pipeline run %s started for branch %s (%s)", run_id, branch, trigger)

        resolve_dependencies(repo, config, runner)
        build = run_build_stage(repo, config, runner)
        result = PipelineResult(run_id=run_id, branch=branch, build=build)

        if branch == config.deploy_branch:
            result.publish = publish_output_tree(repo, config, runner)
        else:
            logger.info(
                "Branch %s is not the deploy branch %s; skipping publish.",
                branch,
                config.deploy_branch,
            )
    except PipelineError as exc:
        logger.exception("Pipeline run %s failed in stage %s", run_id, exc.stage)
        _record_failure(run_id, branch, exc)
        raise
    except Exception as exc:
        logger.exception("Pipeline run %s failed unexpectedly", run_id)
        _record_failure(run_id, branch, exc)
        raise

    _record_success(run_id, result)
    return result


def recent_runs(session, limit: int = 20) -> list[PipelineRun]:
    return (
        session.query(PipelineRun)
        .order_by(PipelineRun.id.desc())
        .limit(limit)
        .all()
    )


__all__ = [
    "PipelineConfig",
    "PipelineResult",
    "load_pipeline_config",
    "recent_runs",
    "run_publish_pipeline",
]


if __name__ == "__main__":  # pragma: no cover - manual entry
    logging.basicConfig(level=logging.INFO)
    from packages.db import create_all, engine

    create_all(engine)
    run_publish_pipeline()
