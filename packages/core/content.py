from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

import yaml

from packages.core.errors import ContentError

DOCUMENT_SUFFIXES = (".md", ".markdown", ".rst", ".html")
DEFAULT_CONTENT_PATTERNS = tuple(
    f"posts/**/*{suffix}" for suffix in DOCUMENT_SUFFIXES
) + ("*.markdown", "*.rst")

_FENCE = "---"


@dataclass(frozen=True)
class Document:
    path: str
    source: Path
    title: str
    author: str | None = None
    tags: frozenset[str] = frozenset()
    body: str = ""
    metadata: dict = field(default_factory=dict, compare=False)


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Return (front matter, body). Front matter is None when the text has no fence."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FENCE:
        return None, text
    for i in range(1, len(lines)):
        if lines[i].strip() in (_FENCE, "..."):
            return "".join(lines[1:i]), "".join(lines[i + 1 :])
    return None, text


def _parse_tags(value) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value]
    else:
        raise ValueError(f"tags must be a list or comma-separated string, got {value!r}")
    return frozenset(t.strip() for t in items if t.strip())


def parse_document(logical_path: str, source: Path, text: str) -> Document:
    front, body = split_front_matter(text)
    if front is None:
        raise ContentError(logical_path, "missing front matter")
    try:
        metadata = yaml.safe_load(front) or {}
    except yaml.YAMLError as exc:
        raise ContentError(logical_path, f"unparsable front matter: {exc}") from exc
    if not isinstance(metadata, dict):
        raise ContentError(logical_path, "front matter must be a mapping")

    title = metadata.get("title")
    if title is None or not str(title).strip():
        raise ContentError(logical_path, "front matter has no title")
    try:
        tags = _parse_tags(metadata.get("tags"))
    except ValueError as exc:
        raise ContentError(logical_path, str(exc)) from exc
    author = metadata.get("author")
    return Document(
        path=logical_path,
        source=source,
        title=str(title).strip(),
        author=str(author).strip() if author else None,
        tags=tags,
        body=body.lstrip("\n"),
        metadata=metadata,
    )


class ContentTree:
    """Authored documents keyed by logical path (relative path without suffix)."""

    def __init__(self, documents: Iterable[Document] = ()):
        self._documents: dict[str, Document] = {}
        for doc in documents:
            self.add(doc)

    def add(self, doc: Document) -> None:
        existing = self._documents.get(doc.path)
        if existing is not None:
            raise ContentError(
                doc.path,
                f"duplicate document path ({existing.source.name} and {doc.source.name})",
            )
        self._documents[doc.path] = doc

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(sorted(self._documents.values(), key=lambda d: d.path))

    def __contains__(self, path: object) -> bool:
        return path in self._documents

    def get(self, path: str) -> Document | None:
        return self._documents.get(path)

    def tag_counts(self) -> list[tuple[str, int]]:
        tags = Counter()
        for doc in self._documents.values():
            tags.update(doc.tags)
        return sorted(tags.items(), key=lambda kv: (-kv[1], kv[0]))


def iter_content_files(
    root: Path, patterns: Iterable[str], exclude: Iterable[Path] = ()
) -> list[Path]:
    excluded = [p.resolve() for p in exclude]
    found: set[Path] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            resolved = path.resolve()
            if any(resolved == ex or ex in resolved.parents for ex in excluded):
                continue
            found.add(path)
    return sorted(found)


def load_content_tree(
    root: str | Path,
    patterns: Iterable[str] = DEFAULT_CONTENT_PATTERNS,
    exclude: Iterable[Path] = (),
) -> ContentTree:
    """Read and validate every source document under `root`."""
    root_path = Path(root)
    tree = ContentTree()
    for path in iter_content_files(root_path, patterns, exclude):
        logical = path.relative_to(root_path).with_suffix("").as_posix()
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ContentError(logical, "not UTF-8 text") from exc
        tree.add(parse_document(logical, path, text))
    return tree


__all__ = [
    "DEFAULT_CONTENT_PATTERNS",
    "DOCUMENT_SUFFIXES",
    "ContentTree",
    "Document",
    "iter_content_files",
    "load_content_tree",
    "parse_document",
    "split_front_matter",
]
