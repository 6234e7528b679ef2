from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, tzinfo

from packages.core.errors import NestedPublishError, OuterPublishError
from packages.worker.build.config import PipelineConfig
from packages.worker.runner import Git, Runner
from packages.worker.site_repo import SiteRepo

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


@dataclass(frozen=True)
class PublishResult:
    nested_commit: str
    outer_commit: str
    nested_changed: bool
    outer_changed: bool


def build_commit_message(
    template: str, *, marker: str, path: str, now: datetime, tz: tzinfo
) -> str:
    timestamp = now.astimezone(tz).strftime(TIMESTAMP_FORMAT)
    return template.format(timestamp=timestamp, marker=marker, path=path)


def publish_output_tree(
    repo: SiteRepo,
    config: PipelineConfig,
    runner: Runner,
    now: datetime | None = None,
) -> PublishResult:
    """
    Push the output tree to the publishing branch, then record it in the outer repo.

    The outer pointer is only touched after the nested push succeeded, so the
    outer repository never references an unpublished commit.
    """
    now = now or datetime.now().astimezone()
    tz = config.tzinfo()
    env = {**config.environment(), **config.identity().git_env()}
    nested = Git(repo.output_dir, runner, env)
    outer = Git(repo.root, runner, env)
    nested_msg = build_commit_message(
        config.nested_message,
        marker=config.skip_marker,
        path=repo.output_rel,
        now=now,
        tz=tz,
    )
    outer_msg = build_commit_message(
        config.outer_message,
        marker=config.skip_marker,
        path=repo.output_rel,
        now=now,
        tz=tz,
    )

    try:
        nested("status")
        nested("add", "--all")
        nested_changed = not nested.succeeds("diff", "--cached", "--quiet")
        if nested_changed:
            nested("commit", "-m", nested_msg)
        else:
            logger.info("No changes in %s/; nothing to commit", repo.output_rel)
        nested("push", config.remote, config.publish_branch)
        nested_commit = nested.output("rev-parse", "HEAD")
    except (subprocess.CalledProcessError, OSError) as exc:
        raise NestedPublishError(
            f"Publishing {repo.output_rel}/ to {config.publish_branch} failed: {exc}"
        ) from exc
    logger.info("Published %s to %s", nested_commit, config.publish_branch)

    try:
        outer("status")
        outer("add", repo.output_rel)
        outer_changed = not outer.succeeds(
            "diff", "--cached", "--quiet", "--", repo.output_rel
        )
        if outer_changed:
            outer("commit", "-m", outer_msg, "--", repo.output_rel)
        else:
            logger.info("Pointer to %s/ unchanged", repo.output_rel)
        outer("push", config.remote, config.deploy_branch)
        outer_commit = outer.output("rev-parse", "HEAD")
    except (subprocess.CalledProcessError, OSError) as exc:
        raise OuterPublishError(
            f"Site is live at {nested_commit} but updating {repo.output_rel}/ "
            f"on {config.deploy_branch} failed: {exc}",
            nested_commit=nested_commit,
        ) from exc

    return PublishResult(
        nested_commit=nested_commit,
        outer_commit=outer_commit,
        nested_changed=nested_changed,
        outer_changed=outer_changed,
    )


__all__ = ["PublishResult", "build_commit_message", "publish_output_tree"]
