"""Content hashing for change detection.

Digests are plain SHA256 over the file bytes, formatted as "sha256:<hex>",
so the same content always yields the same digest on every platform.
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from .constants import DEFAULT_HASH_WORKERS
from .errors import FileDigestError

logger = logging.getLogger(__name__)


def compute_file_digest(path: Path) -> str:
    """Compute SHA256 hash of file contents.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"

    Raises:
        FileDigestError: If the file cannot be opened or read
    """
    sha256 = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
    except OSError as e:
        raise FileDigestError(path, e.strerror or str(e)) from e
    return f"sha256:{sha256.hexdigest()}"


def compute_digests(
    root: Path,
    relpaths: Iterable[str],
    max_workers: int = DEFAULT_HASH_WORKERS,
) -> Dict[str, str]:
    """Compute digests for repository-relative paths in parallel.

    Each worker returns its own (path, digest) pair and the results are
    merged after every worker has finished. Files that vanished or cannot
    be read are left out of the result.

    Args:
        root: Repository root the paths are relative to
        relpaths: POSIX-style paths relative to root
        max_workers: Number of hashing threads

    Returns:
        Dict mapping each readable path to its digest
    """
    def compute_one(relpath: str) -> Tuple[str, Optional[str]]:
        try:
            return relpath, compute_file_digest(root / relpath)
        except FileDigestError as e:
            logger.warning("Skipping unreadable file %s: %s", relpath, e.reason)
            return relpath, None

    paths = list(relpaths)
    if not paths:
        return {}

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(paths)))) as executor:
        futures = [executor.submit(compute_one, p) for p in paths]
        results = {}
        for future in futures:
            relpath, digest = future.result()
            if digest:
                results[relpath] = digest
        return results


__all__ = [
    "compute_file_digest",
    "compute_digests",
]
