import logging
from pathlib import Path
from typing import Optional

import typer

from packages.core.ci_config import load_ci_config
from packages.core.content import load_content_tree
from packages.core.errors import PipelineError
from packages.worker.build import load_pipeline_config, run_publish_pipeline

app = typer.Typer(name="pagesmith", help="Build and publish a static blog.")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run(
    branch: Optional[str] = typer.Option(
        None, "--branch", "-b", help="Branch being built (defaults to the checked-out one)."
    ),
):
    """
    Run dependencies, build and (on the deploy branch) publish.
    """
    from packages.db import create_all, engine

    create_all(engine)
    try:
        result = run_publish_pipeline(branch=branch, trigger="cli")
    except PipelineError as exc:
        typer.echo(f"Pipeline failed in stage {exc.stage}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"Run {result.run_id} on {result.branch}: {result.build.documents} document(s), "
        f"digest {result.build.output_digest[:12]}"
    )
    if result.publish is not None:
        typer.echo(f"Published {result.publish.nested_commit}")


@app.command()
def ci(
    descriptor: Path = typer.Argument(..., help="Path to a circle.yml-style descriptor."),
    branch: str = typer.Option(..., "--branch", "-b", help="Branch that was pushed."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the plan only."),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Directory to run commands in."),
):
    """
    Run a CI descriptor's steps for a push to BRANCH.
    """
    from packages.worker.ci import run_descriptor

    try:
        config = load_ci_config(descriptor)
        if dry_run:
            for step in config.plan(branch):
                typer.echo(f"{step.name}\t{step.policy.value}\t{step.command}")
            return
        run_descriptor(config, branch, cwd=cwd)
    except PipelineError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


@app.command("check-content")
def check_content(
    root: Optional[Path] = typer.Argument(None, help="Site root (defaults to config)."),
):
    """
    Validate front matter of every source document.
    """
    config = load_pipeline_config()
    site_root = root or Path(config.site_root)
    try:
        tree = load_content_tree(
            site_root, config.content_patterns, exclude=[site_root / config.output_dir]
        )
    except PipelineError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{len(tree)} document(s) OK")
    for tag, count in tree.tag_counts():
        typer.echo(f"  {tag}: {count}")


@app.command()
def status(limit: int = typer.Option(5, "--limit", "-n")):
    """
    Show the build state and recent runs.
    """
    from packages.db import create_all, engine, ensure_build_state, session_scope
    from packages.worker.build.pipeline import recent_runs

    create_all(engine)
    with session_scope() as session:
        state = ensure_build_state(session)
        typer.echo(f"last build:   {state.last_build_at or '-'}")
        typer.echo(f"site commit:  {state.last_build_commit or '-'}")
        typer.echo(f"outer commit: {state.last_outer_commit or '-'}")
        if state.pointer_stale:
            typer.echo("WARNING: site is live but the outer pointer is stale; re-run to repair")
        if state.last_error:
            typer.echo(f"last error:   {state.last_error}")
        for item in recent_runs(session, limit=limit):
            typer.echo(
                f"#{item.id} {item.status} {item.branch or '-'} "
                f"{item.failed_stage or ''}".rstrip()
            )


@app.command()
def serve():
    """
    Start the webhook/API server.
    """
    import serve as server

    server.run()


if __name__ == "__main__":
    app()
