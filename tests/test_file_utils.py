from __future__ import annotations

from pathlib import Path

import pytest

from chorus.shared.file_utils import FileIndex


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "App.tsx").write_text("", encoding="utf-8")
    (tmp_path / "src" / "util.py").write_text("", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("", encoding="utf-8")
    (tmp_path / "README.md").write_text("", encoding="utf-8")
    (tmp_path / "debug.log").write_text("", encoding="utf-8")
    (tmp_path / ".gitignore").write_text("# logs\n*.log\n", encoding="utf-8")
    return tmp_path


def test_list_files_skips_ignored_and_sorts_dirs_first(project: Path) -> None:
    entries = FileIndex().list_files(project)
    assert [(e.path, e.is_dir) for e in entries] == [
        ("src", True),
        (".gitignore", False),
        ("README.md", False),
        ("src/App.tsx", False),
        ("src/util.py", False),
    ]


def test_extension_filter_keeps_directories(project: Path) -> None:
    entries = FileIndex().list_files(project, extensions=["py"])
    assert [e.path for e in entries] == ["src", "src/util.py"]


def test_max_depth_limits_recursion(project: Path) -> None:
    entries = FileIndex().list_files(project, max_depth=1)
    assert "src/App.tsx" not in [e.path for e in entries]
    assert "src" in [e.path for e in entries]


def test_search_prefers_prefix_matches(project: Path) -> None:
    index = FileIndex()
    assert [e.path for e in index.search(project, "src/")] == ["src/App.tsx", "src/util.py"]
    assert [e.path for e in index.search(project, "util")] == ["src/util.py"]
    assert index.search(project, "src", limit=1)[0].path == "src/App.tsx"


def test_listing_is_cached_until_invalidated(project: Path) -> None:
    index = FileIndex()
    index.list_files(project)
    (project / "new.txt").write_text("", encoding="utf-8")

    assert "new.txt" not in [e.path for e in index.list_files(project)]
    index.invalidate()
    assert "new.txt" in [e.path for e in index.list_files(project)]


def test_missing_directory_lists_nothing(tmp_path: Path) -> None:
    assert FileIndex().list_files(tmp_path / "nope") == []
