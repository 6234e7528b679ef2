import os
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

os.environ.setdefault("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")
os.environ.setdefault(
    "PAGESMITH_DB_PATH", f"sqlite:///{tempfile.mkdtemp()}/default.db"
)
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

# Ensure project root is importable
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packages.db import Base  # noqa: E402
from packages.worker.build.config import PipelineConfig  # noqa: E402

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@dataclass
class Call:
    cwd: Path
    command: str
    env: dict = field(default_factory=dict)


class FakeRunner:
    """Stands in for git, the toolchain and the generator.

    Every command succeeds unless a rule says otherwise. `git diff --cached
    --quiet` exits 1 by default, i.e. there is always something to commit.
    """

    def __init__(self):
        self.calls: list[Call] = []
        self._rules: list[tuple[str, Path | None, int]] = [
            ("diff --cached --quiet", None, 1)
        ]
        self.outputs: dict[str, str | Callable[[Path], str]] = {
            "rev-parse HEAD": lambda cwd: ("a" if cwd.name == "_site" else "b") * 40,
        }
        self.hooks: dict[str, Callable[[Path], None]] = {}

    def set_returncode(self, pattern: str, returncode: int, cwd: Path | None = None):
        self._rules.insert(0, (pattern, cwd, returncode))

    def run(
        self,
        args,
        *,
        cwd,
        env=None,
        shell=False,
        check=True,
        capture_output=False,
    ):
        cwd = Path(cwd)
        command = args if isinstance(args, str) else " ".join(args)
        self.calls.append(Call(cwd=cwd, command=command, env=dict(env or {})))
        for pattern, hook in self.hooks.items():
            if pattern in command:
                hook(cwd)
        returncode = 0
        for pattern, rule_cwd, rc in self._rules:
            if pattern in command and (rule_cwd is None or rule_cwd == cwd):
                returncode = rc
                break
        stdout = ""
        for pattern, out in self.outputs.items():
            if pattern in command:
                stdout = out(cwd) if callable(out) else out
                break
        if returncode and check:
            raise subprocess.CalledProcessError(
                returncode, args, output=stdout, stderr="simulated failure"
            )
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")

    @property
    def commands(self) -> list[str]:
        return [c.command for c in self.calls]

    def index(self, pattern: str, cwd: Path | None = None) -> int:
        for i, call in enumerate(self.calls):
            if pattern in call.command and (cwd is None or call.cwd == cwd):
                return i
        raise AssertionError(f"{pattern!r} was never run (cwd={cwd})")

    def ran(self, pattern: str, cwd: Path | None = None) -> bool:
        return any(
            pattern in c.command and (cwd is None or c.cwd == cwd) for c in self.calls
        )


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def write_doc(root: Path, rel: str, front: str, body: str = "Body text.\n") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{front.strip()}\n---\n\n{body}", encoding="utf-8")
    return path


@pytest.fixture
def site_root(tmp_path) -> Path:
    """A minimal blog checkout: manifest, two posts, an about page, an output dir."""
    root = tmp_path / "blog"
    root.mkdir()
    (root / "blog.cabal").write_text("name: blog\n", encoding="utf-8")
    write_doc(
        root,
        "posts/2015-10-01-dependent-types.markdown",
        "title: Dependent types via implicits\nauthor: Jane\ntags: types, scala",
    )
    write_doc(
        root,
        "posts/2015-09-01-hello.md",
        "title: Hello\ntags:\n  - meta",
    )
    write_doc(root, "about.rst", "title: About")
    (root / "_site").mkdir()
    return root


@pytest.fixture
def site_config(site_root) -> PipelineConfig:
    return PipelineConfig(site_root=str(site_root))


@pytest.fixture(scope="function")
def db_url() -> Iterator[str]:
    with tempfile.TemporaryDirectory() as tmpdir:
        yield f"sqlite:///{tmpdir}/test.db"


def rebind_engine(db_url: str):
    # Reload engine/session makers with a fresh SQLite URL.
    import importlib

    os.environ["PAGESMITH_DB_PATH"] = db_url
    db_engine_module = importlib.reload(importlib.import_module("packages.db.engine"))
    importlib.reload(importlib.import_module("packages.db"))
    importlib.reload(importlib.import_module("apps.api.deps"))
    api_main = importlib.reload(importlib.import_module("apps.api.main"))

    Base.metadata.create_all(db_engine_module.engine)
    return api_main.app


@pytest.fixture(scope="function")
def database(db_url: str, monkeypatch):
    monkeypatch.setenv("PAGESMITH_DB_PATH", db_url)
    rebind_engine(db_url)
    return db_url


@pytest.fixture(scope="function")
def test_client(database, monkeypatch):
    monkeypatch.setenv("PAGESMITH_ENABLE_SCHEDULER", "0")
    monkeypatch.setenv("PAGESMITH_ADMIN_TOKEN", "admin-token")
    from apps.api.main import app

    yield TestClient(app)
