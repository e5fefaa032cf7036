"""Workspace file collection for the analysis tools.

Walks the project (or the requested paths), prunes build and dependency
directories, and keeps source files of the enabled languages within size caps.
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EXCLUDE_DIRS = {
    "node_modules", ".git", "__pycache__", ".venv", "venv",
    "dist", "build", "out", ".next", ".nuxt", "coverage", ".pytest_cache",
    ".mypy_cache", ".tox", ".aidev", "vendor", ".vs", ".idea", ".vscode",
}

LANGUAGE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "typescript": (".ts", ".tsx", ".mts", ".cts"),
    "javascript": (".js", ".jsx", ".mjs", ".cjs"),
    "python": (".py",),
}

EXCLUDE_PATTERNS = {
    "*.min.js", "*.map", "*.d.ts", "*.generated.*", "*_pb2.py",
}


@dataclass
class SourceFile:
    path: Path
    relative: str
    language: str

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8", errors="replace")


def language_for(path: Path | str) -> Optional[str]:
    ext = Path(path).suffix.lower()
    for language, exts in LANGUAGE_EXTENSIONS.items():
        if ext in exts:
            return language
    return None


def _is_excluded_name(name: str) -> bool:
    return any(fnmatch.fnmatch(name.lower(), p) for p in EXCLUDE_PATTERNS)


def _walk(root: Path) -> Iterable[Path]:
    if root.is_file():
        yield root
        return
    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in EXCLUDE_DIRS)
        for fname in sorted(files):
            yield Path(dirpath) / fname


def to_relative(project_path: Path, path: Path) -> str:
    try:
        return path.resolve().relative_to(project_path.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def collect_source_files(
    project_path: Path,
    paths: Optional[list[str]] = None,
    languages: Optional[Iterable[str]] = None,
    max_files: int = 500,
    max_file_kb: int = 256,
) -> list[SourceFile]:
    """Source files under ``paths`` (default: whole project), sorted by path.

    Files in excluded directories, matching excluded patterns, larger than
    ``max_file_kb`` or outside the enabled ``languages`` are skipped.
    """
    enabled = set(languages) if languages else set(LANGUAGE_EXTENSIONS)
    roots = [project_path / p for p in paths] if paths else [project_path]
    max_bytes = max_file_kb * 1024

    seen: set[Path] = set()
    selected: list[SourceFile] = []
    for root in roots:
        if not root.exists():
            continue
        for fp in _walk(root):
            if fp in seen:
                continue
            seen.add(fp)
            language = language_for(fp)
            if language not in enabled or _is_excluded_name(fp.name):
                continue
            try:
                if fp.stat().st_size > max_bytes:
                    continue
            except OSError:
                continue
            selected.append(SourceFile(path=fp, relative=to_relative(project_path, fp), language=language))

    selected.sort(key=lambda f: f.relative)
    return selected[:max_files]
