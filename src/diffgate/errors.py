"""Custom exceptions for diffgate.

Three families abort a run: configuration problems, version-control
problems and snapshot storage problems. Command failures are never raised;
they are collected by the runner as result statuses.
"""


class DiffgateError(RuntimeError):
    """Base class for all diffgate errors."""
    pass


# Configuration Errors
class ConfigError(DiffgateError):
    """Invalid flags, values or configuration file."""
    pass


class InvalidPatternError(ConfigError):
    """Glob pattern cannot be used for matching."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid glob pattern {pattern!r}: {reason}")


# Version Control Errors
class VcsError(DiffgateError):
    """Git could not report the working-tree diff."""
    pass


class NotAWorkingCopyError(VcsError):
    """No git working copy found at or above a path."""

    def __init__(self, path):
        self.path = path
        super().__init__(
            f"Not inside a git working copy: {path} "
            f"(no .git found in this directory or any parent)"
        )


# Storage Errors
class StorageError(DiffgateError):
    """Base class for file I/O errors."""
    pass


class SnapshotWriteError(StorageError):
    """Snapshot could not be persisted."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write snapshot to {path}: {reason}")


class FileDigestError(StorageError):
    """A file could not be read for hashing."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")
