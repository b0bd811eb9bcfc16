"""Working-tree diff via the git binary."""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Set

from .constants import DEFAULT_GIT_TIMEOUT
from .errors import NotAWorkingCopyError, VcsError
from .matching import normalize_path

logger = logging.getLogger(__name__)


def parse_porcelain(output: str) -> Set[str]:
    """Parse ``git status --porcelain=v1 -z`` output into a set of paths.

    Each record is ``XY <path>`` terminated by NUL. Renames and copies are
    followed by an extra NUL-terminated record holding the original path;
    both paths are returned. Untracked and ignored entries are skipped.
    """
    paths: Set[str] = set()
    records: List[str] = output.split("\0")
    i = 0
    while i < len(records):
        record = records[i]
        i += 1
        if len(record) < 4:
            continue
        status, path = record[:2], record[3:]
        if status in ("??", "!!"):
            continue
        paths.add(normalize_path(path))
        if "R" in status or "C" in status:
            if i < len(records) and records[i]:
                paths.add(normalize_path(records[i]))
            i += 1
    return paths


class DiffScanner:
    """Lists paths that differ from the last commit (staged and unstaged).

    Intent-to-add files and deletions are included; untracked files are not.
    """

    def __init__(self, git: str = "git", timeout: float = DEFAULT_GIT_TIMEOUT):
        self.git = git
        self.timeout = timeout

    def _run_git(self, root: Path, *args: str) -> str:
        """Run a git command in root and return its stdout.

        Raises:
            NotAWorkingCopyError: If root is not inside a git working copy
            VcsError: If git is missing, times out or fails
        """
        # Read-only queries must not take the index lock
        env = {**os.environ, "GIT_OPTIONAL_LOCKS": "0", "LC_ALL": "C"}
        try:
            result = subprocess.run(
                [self.git, *args],
                cwd=root,
                capture_output=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as e:
            if not Path(root).is_dir():
                raise NotAWorkingCopyError(root) from e
            raise VcsError(f"git executable not found: {self.git}") from e
        except subprocess.TimeoutExpired as e:
            raise VcsError(f"git {args[0]} timed out after {self.timeout:g}s in {root}") from e
        except OSError as e:
            raise VcsError(f"Cannot run git in {root}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            if "not a git repository" in stderr.lower():
                raise NotAWorkingCopyError(root)
            raise VcsError(
                f"git {args[0]} failed with exit code {result.returncode} in {root}: {stderr}"
            )

        # Paths are raw bytes; keep undecodable names addressable on disk
        try:
            return os.fsdecode(result.stdout)
        except UnicodeDecodeError as e:
            raise VcsError(f"git {args[0]} produced undecodable output in {root}: {e}") from e

    def changed_paths(self, root: Path) -> Set[str]:
        """Get repository-relative paths that differ from HEAD.

        Args:
            root: Repository root

        Returns:
            Set of POSIX paths relative to root, deleted files included

        Raises:
            VcsError: If root is not a working copy or git fails
        """
        output = self._run_git(
            root, "status", "--porcelain=v1", "-z", "--untracked-files=no"
        )
        paths = parse_porcelain(output)
        logger.debug("git reports %d changed paths in %s", len(paths), root)
        return paths
