"""File listing for @-mention autocomplete.

Provides:
- FileEntry: file/directory data model
- FileLister: the interface the mention resolver consumes
- FileIndex: default cached scanner honoring .gitignore and SKIP_DIRS
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


# ── Data models ──────────────────────────────────────────────

@dataclass
class FileEntry:
    """A single file or directory in a listing."""

    name: str
    path: str  # Relative to the listed directory, "/" separated
    is_dir: bool


class FileLister(Protocol):
    """Anything that can list files under a directory."""

    def list_files(
        self,
        directory: str | Path,
        extensions: list[str] | None = None,
        max_depth: int = 4,
    ) -> list[FileEntry]:
        ...


# ── FileIndex ────────────────────────────────────────────────

SKIP_DIRS: set[str] = {
    ".git", "node_modules", "__pycache__", ".venv", "venv",
    "target", "build", "dist", ".tox", ".mypy_cache",
    ".pytest_cache", ".ruff_cache", ".eggs", ".next",
}


def _load_gitignore(directory: Path) -> list[str]:
    """Parse .gitignore in ``directory`` into glob patterns."""
    gi_path = directory / ".gitignore"
    patterns: list[str] = []
    if not gi_path.is_file():
        return patterns
    try:
        for line in gi_path.read_text(encoding="utf-8", errors="replace").splitlines():
            line = line.strip()
            if line and not line.startswith("#") and not line.startswith("!"):
                patterns.append(line)
    except OSError:
        logger.debug("Could not read %s", gi_path, exc_info=True)
    return patterns


def _is_ignored(rel_path: str, is_dir: bool, patterns: list[str]) -> bool:
    parts = rel_path.split("/")
    if any(part in SKIP_DIRS for part in parts):
        return True
    for pattern in patterns:
        clean = pattern.strip("/")
        if pattern.endswith("/") and not is_dir:
            continue
        if fnmatch.fnmatch(parts[-1], clean) or fnmatch.fnmatch(rel_path, clean):
            return True
    return False


def _matches_extension(name: str, extensions: list[str] | None) -> bool:
    if not extensions:
        return True
    lower = name.lower()
    return any(lower.endswith("." + ext.lower().lstrip(".")) for ext in extensions)


class FileIndex:
    """Cached project file scanner.

    Listings are cached per (directory, max_depth) for CACHE_TTL
    seconds; the extension filter is applied to the cached listing.
    Directories are listed so callers can show them, but extension
    filtering only applies to files.
    """

    CACHE_TTL: float = 30.0

    def __init__(self) -> None:
        self._cache: dict[tuple[str, int], tuple[float, list[FileEntry]]] = {}

    def list_files(
        self,
        directory: str | Path,
        extensions: list[str] | None = None,
        max_depth: int = 4,
    ) -> list[FileEntry]:
        root = Path(directory).expanduser()
        key = (str(root.resolve()), max_depth)
        now = time.monotonic()
        cached = self._cache.get(key)
        if cached is None or now - cached[0] > self.CACHE_TTL:
            entries = self._scan(root, max_depth)
            self._cache[key] = (now, entries)
            logger.debug("Indexed %d entries under %s", len(entries), root)
        else:
            entries = cached[1]
        return [e for e in entries if e.is_dir or _matches_extension(e.name, extensions)]

    def search(self, directory: str | Path, query: str, limit: int = 10) -> list[FileEntry]:
        """Files whose path starts with or contains ``query``, prefix matches first."""
        query_lower = query.lower()
        prefix_matches = []
        substring_matches = []
        for e in self.list_files(directory):
            if e.is_dir:
                continue
            path_lower = e.path.lower()
            if path_lower.startswith(query_lower):
                prefix_matches.append(e)
            elif query_lower in path_lower:
                substring_matches.append(e)
        return (prefix_matches + substring_matches)[:limit]

    def invalidate(self) -> None:
        self._cache.clear()

    def _scan(self, root: Path, max_depth: int) -> list[FileEntry]:
        entries: list[FileEntry] = []
        patterns = _load_gitignore(root)
        self._scan_dir(root, "", 0, max_depth, patterns, entries)
        # Dirs first, then alphabetical within each group
        entries.sort(key=lambda e: (not e.is_dir, e.path.lower()))
        return entries

    def _scan_dir(
        self,
        abs_path: Path,
        rel_prefix: str,
        depth: int,
        max_depth: int,
        patterns: list[str],
        entries: list[FileEntry],
    ) -> None:
        if depth >= max_depth:
            return
        try:
            with os.scandir(abs_path) as it:
                for entry in it:
                    rel = f"{rel_prefix}{entry.name}"
                    is_dir = entry.is_dir(follow_symlinks=False)
                    if _is_ignored(rel, is_dir, patterns):
                        continue
                    entries.append(FileEntry(name=entry.name, path=rel, is_dir=is_dir))
                    if is_dir:
                        self._scan_dir(
                            abs_path / entry.name, rel + "/",
                            depth + 1, max_depth, patterns, entries,
                        )
        except OSError:
            logger.debug("Cannot scan %s", abs_path, exc_info=True)
