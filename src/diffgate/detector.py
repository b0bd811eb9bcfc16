"""Change detection: did any file in the diff that matches the glob change
since the previous run?

One pass is load → select candidates → hash → merge → compare → save:

- Candidates are the paths in the working-tree diff that match the glob,
  are not ignored and currently exist as files.
- The new snapshot starts from the loaded one, so entries recorded under
  other patterns survive; candidate entries are replaced by fresh digests
  and diff paths that no longer exist are dropped.
- Without a stored snapshot the pass is a bootstrap: the baseline is saved
  and nothing is reported as changed.
- Otherwise a candidate counts as changed when its digest differs from the
  stored one or was not stored at all.
"""

import logging
from pathlib import Path
from typing import Optional, Set

from .constants import DEFAULT_HASH_WORKERS
from .core import Decision, Snapshot, is_storable_path
from .hashing import compute_digests
from .matching import GlobMatcher, IgnoreSpec
from .state import FileSnapshotStore, SnapshotStore
from .vcs import DiffScanner

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Composes the diff scanner, matcher, hasher and snapshot store."""

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        scanner: Optional[DiffScanner] = None,
        ignore: Optional[IgnoreSpec] = None,
        hash_workers: int = DEFAULT_HASH_WORKERS,
    ):
        self.store = store if store is not None else FileSnapshotStore()
        self.scanner = scanner if scanner is not None else DiffScanner()
        self.ignore = ignore if ignore is not None else IgnoreSpec()
        self.hash_workers = hash_workers

    def select_candidates(self, root: Path, diff_paths: Set[str], pattern: str) -> Set[str]:
        """Diff paths that match the pattern, are not ignored and exist.

        Paths that are not valid UTF-8 cannot be recorded and are skipped.
        """
        matcher = GlobMatcher(pattern)
        candidates = set()
        for path in diff_paths:
            if not matcher.matches(path) or self.ignore.is_ignored(path):
                continue
            if not is_storable_path(path):
                logger.warning("Skipping %r: file name is not valid UTF-8", path)
                continue
            if (root / path).is_file():
                candidates.add(path)
        return candidates

    def evaluate(self, root: Path, pattern: str) -> Decision:
        """Decide whether any candidate file changed since the last run.

        The new snapshot is saved before returning, on every path.

        Args:
            root: Repository root
            pattern: Glob selecting the files that matter

        Returns:
            Decision

        Raises:
            VcsError: If the diff cannot be listed
            SnapshotWriteError: If the new snapshot cannot be saved
        """
        previous, existed = self.store.load(root)

        diff_paths = self.scanner.changed_paths(root)
        candidates = self.select_candidates(root, diff_paths, pattern)
        logger.debug(
            "%d of %d diff paths match %r", len(candidates), len(diff_paths), pattern
        )

        digests = compute_digests(root, sorted(candidates), self.hash_workers)

        files = dict(previous.files)
        for path in diff_paths:
            # Deleted, or vanished/unreadable between scan and hash
            if path not in digests and not (root / path).exists():
                files.pop(path, None)
        for path in candidates - digests.keys():
            files.pop(path, None)
        files.update(digests)

        current = Snapshot(files=files)

        if not existed:
            self.store.save(root, current)
            logger.debug("No previous snapshot for %s, recorded baseline of %d files", root, len(files))
            return Decision(changed=False, bootstrap=True, candidates=sorted(digests))

        changed_paths = sorted(
            path for path, digest in digests.items()
            if previous.digest_for(path) != digest
        )

        self.store.save(root, current)

        if changed_paths:
            logger.debug("Changed since last run: %s", ", ".join(changed_paths))
        return Decision(
            changed=bool(changed_paths),
            candidates=sorted(digests),
            changed_paths=changed_paths,
        )
