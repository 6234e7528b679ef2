from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import tzinfo
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from packages.core.ci_config import CIConfig, load_ci_config
from packages.core.content import DEFAULT_CONTENT_PATTERNS
from packages.core.errors import ConfigError

ENV_PREFIX = "PAGESMITH_"
_TRUTHY = {"1", "true", "TRUE", "yes", "YES"}


@dataclass(frozen=True)
class PublishIdentity:
    name: str
    email: str

    def git_env(self) -> dict[str, str]:
        """Author/committer variables for git subprocesses; no global config is written."""
        return {
            "GIT_AUTHOR_NAME": self.name,
            "GIT_AUTHOR_EMAIL": self.email,
            "GIT_COMMITTER_NAME": self.name,
            "GIT_COMMITTER_EMAIL": self.email,
        }


_MARKER_SENTINEL = "\x00marker\x00"


def _check_message_template(field_name: str, template: str) -> None:
    # Rendered once here so a bad template fails before anything is pushed.
    try:
        rendered = template.format(timestamp="t", marker=_MARKER_SENTINEL, path="p")
    except (AttributeError, KeyError, IndexError, ValueError) as exc:
        raise ConfigError(
            f"{field_name} has an invalid placeholder ({exc}); "
            "allowed: {timestamp}, {marker}, {path}"
        ) from exc
    if _MARKER_SENTINEL not in rendered:
        raise ConfigError(f"{field_name} must contain the {{marker}} placeholder")


@dataclass(frozen=True)
class PipelineConfig:
    site_root: str = "."
    output_dir: str = "_site"
    content_patterns: tuple[str, ...] = DEFAULT_CONTENT_PATTERNS
    publish_branch: str = "gh-pages"
    deploy_branch: str = "hakyll"
    remote: str = "origin"
    git_user_name: str = "CircleCI"
    git_user_email: str = "circleci@circleci"
    skip_marker: str = "[ci skip]"
    nested_message: str = "Update ({timestamp}) {marker}"
    outer_message: str = "Update {path} ({timestamp}) {marker}"
    timezone: str = "America/New_York"
    manifest_glob: str | None = "*.cabal"
    toolchain: str = "ghc"
    toolchain_version: str | None = None
    dependency_commands: tuple[str, ...] = (
        "cabal update",
        "cabal install --only-dependencies -j",
        "cabal configure",
    )
    compile_commands: tuple[str, ...] = ("cabal build",)
    generator_command: str = "cabal run build"
    clean_output: bool = False
    sync_source: bool = False

    def __post_init__(self) -> None:
        if not self.skip_marker.strip():
            raise ConfigError("skip_marker must not be empty")
        for field_name in ("nested_message", "outer_message"):
            _check_message_template(field_name, getattr(self, field_name))
        if not self.generator_command.strip():
            raise ConfigError("generator_command must not be empty")
        if not self.output_dir.strip("/"):
            raise ConfigError("output_dir must name a directory")
        self.tzinfo()

    def tzinfo(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {self.timezone}") from exc

    def identity(self) -> PublishIdentity:
        return PublishIdentity(name=self.git_user_name, email=self.git_user_email)

    def environment(self) -> dict[str, str]:
        return {"TZ": self.timezone}


def apply_ci_config(config: PipelineConfig, ci: CIConfig) -> PipelineConfig:
    """Take timezone, toolchain pin and production branch from a CI descriptor."""
    changes: dict[str, object] = {}
    if ci.machine.timezone:
        changes["timezone"] = ci.machine.timezone
    if ci.machine.toolchains:
        name, version = next(iter(ci.machine.toolchains.items()))
        changes["toolchain"] = name
        changes["toolchain_version"] = version
    production = ci.deployment.get("production")
    if production and production.branch:
        changes["deploy_branch"] = production.branch[0]
    return replace(config, **changes)


def _split(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(";") if part.strip())


def load_pipeline_config(env: Mapping[str, str] | None = None) -> PipelineConfig:
    env = os.environ if env is None else env
    defaults = PipelineConfig()

    def get(name: str, default: str) -> str:
        return env.get(ENV_PREFIX + name, default)

    def get_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
        raw = env.get(ENV_PREFIX + name)
        return default if raw is None else _split(raw)

    config = PipelineConfig(
        site_root=get("SITE_ROOT", defaults.site_root),
        output_dir=get("OUTPUT_DIR", defaults.output_dir),
        content_patterns=get_list("CONTENT_PATTERNS", defaults.content_patterns),
        publish_branch=get("PUBLISH_BRANCH", defaults.publish_branch),
        deploy_branch=get("DEPLOY_BRANCH", defaults.deploy_branch),
        remote=get("REMOTE", defaults.remote),
        git_user_name=get("GIT_USER_NAME", defaults.git_user_name),
        git_user_email=get("GIT_USER_EMAIL", defaults.git_user_email),
        skip_marker=get("SKIP_MARKER", defaults.skip_marker),
        nested_message=get("NESTED_MESSAGE", defaults.nested_message),
        outer_message=get("OUTER_MESSAGE", defaults.outer_message),
        timezone=get("TIMEZONE", defaults.timezone),
        manifest_glob=get("MANIFEST_GLOB", defaults.manifest_glob or "") or None,
        toolchain=get("TOOLCHAIN", defaults.toolchain),
        toolchain_version=get("TOOLCHAIN_VERSION", "") or None,
        dependency_commands=get_list(
            "DEPENDENCY_COMMANDS", defaults.dependency_commands
        ),
        compile_commands=get_list("COMPILE_COMMANDS", defaults.compile_commands),
        generator_command=get("GENERATOR_COMMAND", defaults.generator_command),
        clean_output=get("CLEAN_OUTPUT", "0") in _TRUTHY,
        sync_source=get("SYNC_SOURCE", "0") in _TRUTHY,
    )
    ci_path = env.get(ENV_PREFIX + "CI_CONFIG")
    if ci_path:
        config = apply_ci_config(config, load_ci_config(ci_path))
    return config


__all__ = [
    "PipelineConfig",
    "PublishIdentity",
    "apply_ci_config",
    "load_pipeline_config",
]
