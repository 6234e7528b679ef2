from __future__ import annotations

import shutil
from pathlib import Path


class SiteRepo:
    """Helper for the blog source checkout and its nested output tree."""

    def __init__(self, root: str | Path, output_dir: str = "_site"):
        self.root = Path(root)
        self.output_rel = output_dir.strip("/")
        self.output_dir = self.root / self.output_rel

    def manifest_files(self, pattern: str) -> list[Path]:
        return sorted(p for p in self.root.glob(pattern) if p.is_file())

    def clean_output_tree(self) -> None:
        """Remove rendered files but keep the nested checkout's git metadata."""
        if not self.output_dir.exists():
            self.output_dir.mkdir(parents=True, exist_ok=True)
            return
        for child in self.output_dir.iterdir():
            if child.name == ".git":
                continue
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()


__all__ = ["SiteRepo"]
