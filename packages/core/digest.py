from __future__ import annotations

import hashlib
from pathlib import Path


def tree_digest(root: str | Path, exclude: tuple[str, ...] = (".git",)) -> str:
    """SHA-256 over sorted relative paths and file bytes.

    Two trees with the same files and contents yield the same digest
    regardless of mtimes or directory iteration order.
    """
    root_path = Path(root)
    digest = hashlib.sha256()
    if not root_path.exists():
        return digest.hexdigest()
    files = [
        p
        for p in root_path.rglob("*")
        if p.is_file() and not any(part in exclude for part in p.relative_to(root_path).parts)
    ]
    for path in sorted(files, key=lambda p: p.relative_to(root_path).as_posix()):
        rel = path.relative_to(root_path).as_posix()
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(hashlib.sha256(path.read_bytes()).digest())
    return digest.hexdigest()


__all__ = ["tree_digest"]
