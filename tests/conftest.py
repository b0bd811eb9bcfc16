"""Shared test fixtures and utilities."""

import shutil
import subprocess
from pathlib import Path

import pytest


def git(repo: Path, *args: str) -> str:
    """Run git in repo with a fixed identity and return stdout."""
    result = subprocess.run(
        [
            "git",
            "-c", "user.name=diffgate tests",
            "-c", "user.email=tests@example.com",
            "-c", "commit.gpgsign=false",
            *args,
        ],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


class FakeScanner:
    """DiffScanner stand-in returning a fixed set of paths."""

    def __init__(self, paths=()):
        self.paths = set(paths)
        self.calls = 0

    def changed_paths(self, root: Path):
        self.calls += 1
        return set(self.paths)


@pytest.fixture(autouse=True)
def git_ceiling(tmp_path, monkeypatch):
    """Stop git from discovering repositories above the test directory."""
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: str = "test content", root: Path = tmp_path):
        file_path = root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """A git working copy with one commit, used as the cwd."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")

    (repo / "README.md").write_text("# sample\n")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("print('hello')\n")
    (repo / "src" / "notes.txt").write_text("notes\n")
    (repo / "docs").mkdir()
    (repo / "docs" / "guide.md").write_text("guide\n")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "initial")

    monkeypatch.chdir(repo)
    return repo


@pytest.fixture
def run_git():
    """The git() helper, for tests that stage or commit files."""
    return git


@pytest.fixture
def fake_scanner():
    """Factory for FakeScanner instances."""
    return FakeScanner
