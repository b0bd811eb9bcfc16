"""Glob and ignore pattern matching for diffgate.

Both matchers work on repository-relative POSIX paths and are built on
pathspec's git wildmatch patterns. Globs select files only:

- ``*`` matches any run of characters except ``/``
- ``**`` matches any run of characters including ``/`` (and zero directories)
- a pattern never matches a file just because it names a parent directory
"""

import re
from pathlib import PurePath
from typing import Iterable, Optional, Pattern, Union

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .constants import DIFFGATE_DIR, GIT_DIR
from .errors import InvalidPatternError


# Paths that can never be candidates
DEFAULT_IGNORES = [
    f"{GIT_DIR}/",
    f"{DIFFGATE_DIR}/",
]

# Suffix git wildmatch appends so a pattern also covers a directory's contents
_DIRECTORY_TAIL = "(?:(?P<ps_d>/).*)?$"


def normalize_path(path: Union[str, PurePath]) -> str:
    """Convert a repository-relative path to the POSIX form used in snapshots."""
    if isinstance(path, PurePath):
        path = path.as_posix()
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def _anchor(pattern: str) -> str:
    """Anchor a glob at the repository root.

    Git wildmatch lets slash-free patterns match at any depth; a leading
    slash pins them to the root so ``*.txt`` only sees top-level files.
    """
    return pattern if pattern.startswith("/") else f"/{pattern}"


def _compile(pattern: str) -> Pattern[str]:
    """Compile a glob to a regex that matches whole file paths.

    Raises:
        ValueError: If pathspec cannot translate the pattern
    """
    regex, _ = GitWildMatchPattern.pattern_to_regex(_anchor(pattern))
    if regex is None:
        raise ValueError("pattern matches no file")
    if regex.endswith(_DIRECTORY_TAIL):
        regex = regex[: -len(_DIRECTORY_TAIL)] + "$"
    return re.compile(regex)


def validate_pattern(pattern: Optional[str]) -> str:
    """Check that a glob can be used for matching.

    Args:
        pattern: Glob pattern as given on the command line

    Returns:
        The pattern, unchanged

    Raises:
        InvalidPatternError: If the pattern is empty, is a negation or
            comment, names a directory, or cannot be compiled
    """
    if pattern is None or not pattern.strip():
        raise InvalidPatternError(pattern or "", "pattern is empty")
    if pattern.startswith("!"):
        raise InvalidPatternError(pattern, "negated patterns are not supported")
    if pattern.startswith("#"):
        raise InvalidPatternError(pattern, "pattern starts with '#' and would be read as a comment")
    if pattern.strip() == "/":
        raise InvalidPatternError(pattern, "pattern matches no file")
    if pattern.endswith("/"):
        raise InvalidPatternError(
            pattern, f"pattern names a directory; use '{pattern}**' to match the files below it"
        )
    try:
        _compile(pattern)
    except ValueError as e:
        raise InvalidPatternError(pattern, str(e)) from e
    return pattern


class GlobMatcher:
    """Matches repository-relative paths against one glob pattern.

    An unusable pattern matches nothing; use validate_pattern() to report
    it as a configuration error before matching.
    """

    def __init__(self, pattern: str):
        self.pattern = pattern
        try:
            validate_pattern(pattern)
            self._regex: Optional[Pattern[str]] = _compile(pattern)
        except InvalidPatternError:
            self._regex = None

    @property
    def is_valid(self) -> bool:
        return self._regex is not None

    def matches(self, path: Union[str, PurePath]) -> bool:
        """Check if a repository-relative path matches the pattern.

        Args:
            path: Path relative to the repository root; backslashes are
                treated as separators

        Returns:
            True if the path matches
        """
        if self._regex is None:
            return False
        return self._regex.fullmatch(normalize_path(path)) is not None


def matches(pattern: str, path: Union[str, PurePath]) -> bool:
    """Convenience wrapper: does ``path`` match ``pattern``?"""
    return GlobMatcher(pattern).matches(path)


class IgnoreSpec:
    """Gitignore-style exclusions applied before paths become candidates."""

    def __init__(self, extra: Iterable[str] = ()):
        """Initialize ignore spec with default and custom patterns.

        Args:
            extra: Additional gitignore-style patterns, usually from config
        """
        patterns = list(DEFAULT_IGNORES)
        for line in extra:
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.append(line)
        self.patterns = patterns

        # Compile patterns once for efficiency
        self.spec = PathSpec.from_lines(GitWildMatchPattern, patterns)

    def is_ignored(self, relpath: Union[str, PurePath]) -> bool:
        """Check if a repository-relative path should be ignored."""
        return self.spec.match_file(normalize_path(relpath))
