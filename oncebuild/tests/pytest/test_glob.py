"""
Tests for Glob: wildcard includes, excludes pruning traversal, laziness.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from oncebuild import Glob
from oncebuild.glob import contains_run, split_pattern, wildcard_regex

from .conftest import write_files


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "src"
    write_files(
        root,
        "main.py",
        "README.md",
        "pkg/util.py",
        "pkg/data.json",
        "pkg/sub/deep.py",
        "pkg/__pycache__/util.cpython-312.pyc",
        "out/bin/app.py",
        "a1.txt",
        "a22.txt",
    )
    return root


def relative(root: Path, paths) -> list[str]:
    return sorted(p.relative_to(root).as_posix() for p in paths)


@pytest.mark.evergreen
class TestWildcards:
    def test_star_and_question_mark(self) -> None:
        assert wildcard_regex("*.py").match("main.py")
        assert not wildcard_regex("*.py").match("main.pyc")
        assert wildcard_regex("a?.txt").match("a1.txt")
        assert not wildcard_regex("a?.txt").match("a22.txt")

    def test_case_insensitive(self) -> None:
        assert wildcard_regex("readme.*").match("README.md")

    def test_split_pattern(self) -> None:
        assert split_pattern("./pkg\\sub/*.py") == ["pkg", "sub", "*.py"]

    def test_contains_run(self) -> None:
        patterns = [wildcard_regex("pkg"), wildcard_regex("sub")]
        assert contains_run(("src", "pkg", "sub", "x.py"), patterns)
        assert not contains_run(("pkg", "x", "sub"), patterns)


@pytest.mark.evergreen
class TestGlob:
    """Glob(root).include(...).exclude(...) finds files lazily."""

    def test_include_top_level(self, tree: Path) -> None:
        assert relative(tree, Glob(tree).include("*.py")) == ["main.py"]

    def test_include_recursive(self, tree: Path) -> None:
        found = relative(tree, Glob(tree).include("**/*.py"))
        assert found == ["main.py", "out/bin/app.py", "pkg/sub/deep.py", "pkg/util.py"]

    def test_exclude_prunes_directories(self, tree: Path) -> None:
        found = relative(tree, Glob(tree).include("**/*.py").exclude("out"))
        assert found == ["main.py", "pkg/sub/deep.py", "pkg/util.py"]

    def test_exclude_contiguous_parts(self, tree: Path) -> None:
        found = relative(tree, Glob(tree).include("**").exclude("pkg/sub").files())
        assert "pkg/sub/deep.py" not in found
        assert "pkg/util.py" in found

    def test_exclude_predicate(self, tree: Path) -> None:
        found = relative(tree, Glob(tree).include("**/*").exclude(lambda p: p.suffix == ".pyc").files())
        assert "pkg/__pycache__/util.cpython-312.pyc" not in found
        assert "pkg/data.json" in found

    def test_question_mark_pattern(self, tree: Path) -> None:
        assert relative(tree, Glob(tree).include("a?.txt")) == ["a1.txt"]

    def test_builder_is_immutable(self, tree: Path) -> None:
        base = Glob(tree).include("**/*.py")
        narrowed = base.exclude("pkg")
        assert len(list(base)) == 4
        assert len(list(narrowed)) == 2

    def test_missing_root_yields_nothing(self, tmp_path: Path) -> None:
        assert list(Glob(tmp_path / "missing").include("**")) == []

    def test_iteration_is_lazy(self, tree: Path) -> None:
        found = iter(Glob(tree).include("**"))
        first = next(found)
        assert first.parent == tree

    def test_files_only(self, tree: Path) -> None:
        assert all(p.is_file() for p in Glob(tree).include("**").files())
