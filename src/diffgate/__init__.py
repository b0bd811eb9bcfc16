"""diffgate: run commands only when watched files in the git diff changed."""

from .constants import DIFFGATE_VERSION as __version__
from .core import AggregateResult, CommandSpec, CommandStatus, Decision, RunResult, Snapshot
from .detector import ChangeDetector
from .runner import CommandRunner
from .state import FileSnapshotStore, MemorySnapshotStore, SnapshotStore
from .vcs import DiffScanner

__all__ = [
    "__version__",
    "AggregateResult",
    "ChangeDetector",
    "CommandRunner",
    "CommandSpec",
    "CommandStatus",
    "Decision",
    "DiffScanner",
    "FileSnapshotStore",
    "MemorySnapshotStore",
    "RunResult",
    "Snapshot",
    "SnapshotStore",
]
