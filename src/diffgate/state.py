"""Snapshot persistence.

The snapshot lives at a fixed location under the repository root
(.diffgate/snapshot.json) and is replaced atomically on every save, so a
concurrent reader sees either the previous snapshot or the new one.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Protocol, Tuple

from pydantic import ValidationError

from .constants import CONFIG_FILE
from .context import snapshot_path_for
from .core import Snapshot
from .errors import SnapshotWriteError

logger = logging.getLogger(__name__)

# Keeps the snapshot out of `git status`; the config file stays committable
STATE_GITIGNORE = f"*\n!.gitignore\n!{CONFIG_FILE}\n"


# ============= Atomic Write Helpers =============

def _atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to temp file with fsync to ensure content is on disk
    2. Atomic rename to target path (appears all-at-once)
    3. Fsync parent directory to ensure rename is durable

    Directory fsync is best-effort; it is not supported on Windows.

    Args:
        path: Target file path
        text: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory
    with tempfile.NamedTemporaryFile(
        mode="w",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix="",
        encoding="utf-8",
    ) as f:
        tmp = Path(f.name)
        try:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        except BaseException:
            f.close()
            tmp.unlink(missing_ok=True)
            raise

    try:
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        dirfd = os.open(str(path.parent), flags)
        try:
            os.fsync(dirfd)
        finally:
            os.close(dirfd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path.parent)


# ============= Stores =============

class SnapshotStore(Protocol):
    """
    Protocol for snapshot storage.

    One snapshot per repository root. Loading never fails: anything that
    cannot be read back as a valid snapshot counts as "no snapshot yet".
    """

    def load(self, root: Path) -> Tuple[Snapshot, bool]:
        """
        Load the snapshot for a repository.

        Args:
            root: Repository root

        Returns:
            (snapshot, existed); an empty snapshot and False when there is
            no usable stored snapshot
        """
        ...

    def save(self, root: Path, snapshot: Snapshot) -> None:
        """
        Persist the snapshot for a repository, replacing the previous one.

        Raises:
            SnapshotWriteError: If the snapshot cannot be written
        """
        ...


class FileSnapshotStore:
    """Stores the snapshot as JSON in .diffgate/snapshot.json."""

    def path_for(self, root: Path) -> Path:
        return snapshot_path_for(root)

    def load(self, root: Path) -> Tuple[Snapshot, bool]:
        path = self.path_for(root)
        if not path.exists():
            return Snapshot(), False

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read snapshot %s, starting over: %s", path, e)
            return Snapshot(), False

        try:
            snapshot = Snapshot.model_validate_json(text)
        except ValidationError as e:
            logger.warning(
                "Ignoring malformed snapshot %s (%d validation errors), starting over",
                path, e.error_count(),
            )
            return Snapshot(), False

        return snapshot, True

    def save(self, root: Path, snapshot: Snapshot) -> None:
        path = self.path_for(root)
        text = json.dumps(snapshot.model_dump(), indent=2, sort_keys=True)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            gitignore = path.parent / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text(STATE_GITIGNORE)
            _atomic_write_text(path, text)
        except OSError as e:
            raise SnapshotWriteError(path, e.strerror or str(e)) from e
        logger.debug("Saved snapshot with %d entries to %s", len(snapshot.files), path)


class MemorySnapshotStore:
    """In-memory store keyed by resolved root, for tests and embedding."""

    def __init__(self):
        self._snapshots: Dict[Path, Snapshot] = {}

    def load(self, root: Path) -> Tuple[Snapshot, bool]:
        stored = self._snapshots.get(root.resolve())
        if stored is None:
            return Snapshot(), False
        return stored.model_copy(deep=True), True

    def save(self, root: Path, snapshot: Snapshot) -> None:
        self._snapshots[root.resolve()] = snapshot.model_copy(deep=True)
