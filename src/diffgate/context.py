"""Repository context: root discovery and state paths."""

from pathlib import Path
from typing import Optional

from .constants import CONFIG_FILE, DIFFGATE_DIR, GIT_DIR, SNAPSHOT_FILE
from .errors import NotAWorkingCopyError


def find_repo_root(start: Path) -> Optional[Path]:
    """Walk up directory tree to find the git working copy root.

    ``.git`` may be a directory or, for worktrees and submodules, a file.
    """
    current = start.resolve()

    while current != current.parent:
        if (current / GIT_DIR).exists():
            return current
        current = current.parent

    # Check root directory
    if (current / GIT_DIR).exists():
        return current
    return None


class RepoContext:
    """Locates the git working copy that contains a starting directory."""

    def __init__(self, start_path: Optional[Path] = None):
        """Initialize context by finding the repository root.

        Args:
            start_path: Path to start searching from (default: cwd)

        Raises:
            NotAWorkingCopyError: If no git working copy contains start_path
        """
        start = start_path or Path.cwd()
        root = find_repo_root(start)
        if root is None:
            raise NotAWorkingCopyError(start)
        self.root = root


def state_dir_for(root: Path) -> Path:
    return root / DIFFGATE_DIR


def snapshot_path_for(root: Path) -> Path:
    return state_dir_for(root) / SNAPSHOT_FILE


def config_path_for(root: Path) -> Path:
    return state_dir_for(root) / CONFIG_FILE
