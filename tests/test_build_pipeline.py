import pytest

from packages.core.errors import (
    BuildError,
    DependencyResolutionError,
    NestedPublishError,
    OuterPublishError,
)
from packages.db import BuildState, PipelineRun, RunStatus, session_scope
from packages.worker.build.pipeline import run_publish_pipeline


def _render_index(cwd):
    out = cwd / "_site" / "index.html"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text("<h1>ok</h1>", encoding="utf-8")


def _git_calls(runner):
    return [c for c in runner.commands if c.startswith("git commit") or c.startswith("git push")]


def test_deploy_branch_runs_all_stages_and_records_state(database, site_config, fake_runner):
    fake_runner.hooks["cabal run build"] = _render_index

    result = run_publish_pipeline(
        branch="hakyll", config=site_config, runner=fake_runner, trigger="push"
    )

    assert result.published
    assert fake_runner.index("cabal update") < fake_runner.index("cabal run build")
    assert fake_runner.index("cabal run build") < fake_runner.index("git commit")
    with session_scope() as session:
        run = session.get(PipelineRun, result.run_id)
        assert run.status == RunStatus.SUCCEEDED.value
        assert run.trigger == "push"
        assert run.branch == "hakyll"
        assert run.published is True
        assert run.documents == 3
        assert run.nested_commit == "a" * 40
        assert run.outer_commit == "b" * 40
        assert run.finished_at is not None
        state = session.get(BuildState, 1)
        assert state.last_build_commit == "a" * 40
        assert state.last_output_digest == result.build.output_digest
        assert state.last_error is None
        assert state.pointer_stale is False


@pytest.mark.parametrize("branch", ["master", "feature/typelevel", "gh-pages"])
def test_other_branches_build_without_publishing(database, site_config, fake_runner, branch):
    result = run_publish_pipeline(branch=branch, config=site_config, runner=fake_runner)

    assert not result.published
    assert fake_runner.ran("cabal run build")
    assert _git_calls(fake_runner) == []
    with session_scope() as session:
        run = session.get(PipelineRun, result.run_id)
        assert run.status == RunStatus.SUCCEEDED.value
        assert run.published is False


def test_branch_defaults_to_checked_out_branch(database, site_config, fake_runner):
    fake_runner.outputs["rev-parse --abbrev-ref HEAD"] = "hakyll"

    result = run_publish_pipeline(config=site_config, runner=fake_runner)

    assert result.branch == "hakyll"
    assert result.published


def test_build_failure_makes_no_commit_or_push(database, site_config, fake_runner):
    fake_runner.set_returncode("cabal run build", 1)

    with pytest.raises(BuildError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    assert _git_calls(fake_runner) == []
    with session_scope() as session:
        run = session.query(PipelineRun).one()
        assert run.status == RunStatus.FAILED.value
        assert run.failed_stage == "build"
        assert run.published is False
        assert "exit code 1" in session.get(BuildState, 1).last_error


def test_dependency_failure_skips_build(database, site_config, fake_runner):
    fake_runner.set_returncode("cabal update", 1)

    with pytest.raises(DependencyResolutionError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    assert not fake_runner.ran("cabal build")
    assert not fake_runner.ran("git")
    with session_scope() as session:
        assert session.query(PipelineRun).one().failed_stage == "dependencies"


def test_nested_push_failure_never_touches_outer(database, site_config, site_root, fake_runner):
    fake_runner.set_returncode("git push", 1, cwd=site_root / "_site")

    with pytest.raises(NestedPublishError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    outer_git = [
        c.command
        for c in fake_runner.calls
        if c.cwd == site_root and c.command.startswith("git ")
    ]
    # Only the build stage's submodule priming touched the outer repo.
    assert outer_git == ["git submodule init", "git submodule update"]
    with session_scope() as session:
        state = session.get(BuildState, 1)
        assert state.pointer_stale is False
        assert state.last_outer_commit is None


def test_outer_failure_marks_pointer_stale_until_rerun(database, site_config, site_root, fake_runner):
    fake_runner.set_returncode("git push origin hakyll", 1, cwd=site_root)

    with pytest.raises(OuterPublishError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    with session_scope() as session:
        run = session.query(PipelineRun).one()
        assert run.failed_stage == "publish-outer"
        assert run.published is True
        assert run.nested_commit == "a" * 40
        assert session.get(BuildState, 1).pointer_stale is True

    fake_runner.set_returncode("git push origin hakyll", 0, cwd=site_root)
    run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    with session_scope() as session:
        state = session.get(BuildState, 1)
        assert state.pointer_stale is False
        assert state.last_outer_commit == "b" * 40
        assert state.last_error is None


def test_sync_source_checks_out_pushed_branch_first(database, site_config, site_root, fake_runner):
    from dataclasses import replace

    config = replace(site_config, sync_source=True)

    run_publish_pipeline(branch="master", config=config, runner=fake_runner)

    assert fake_runner.commands[:2] == [
        "git fetch origin master",
        "git checkout -B master FETCH_HEAD",
    ]
    assert fake_runner.calls[0].cwd == site_root


def test_unexpected_error_still_closes_the_run(database, site_config, fake_runner):
    def crash(cwd):
        raise RuntimeError("generator plugin crashed")

    fake_runner.hooks["cabal run build"] = crash

    with pytest.raises(RuntimeError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    with session_scope() as session:
        run = session.query(PipelineRun).one()
        assert run.status == RunStatus.FAILED.value
        assert run.failed_stage == "pipeline"
        assert run.error == "generator plugin crashed"
        assert run.finished_at is not None
        assert session.get(BuildState, 1).last_error == "generator plugin crashed"


def test_outer_os_error_after_site_push_marks_pointer_stale(
    database, site_config, site_root, fake_runner
):
    def unwritable_index(cwd):
        if cwd == site_root:
            raise PermissionError("index.lock: permission denied")

    fake_runner.hooks["git add _site"] = unwritable_index

    with pytest.raises(OuterPublishError):
        run_publish_pipeline(branch="hakyll", config=site_config, runner=fake_runner)

    assert fake_runner.ran("git push origin gh-pages", cwd=site_root / "_site")
    with session_scope() as session:
        run = session.query(PipelineRun).one()
        assert run.status == RunStatus.FAILED.value
        assert run.failed_stage == "publish-outer"
        assert session.get(BuildState, 1).pointer_stale is True
