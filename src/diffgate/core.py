"""Core data models for diffgate.

Snapshot is the only persisted model (stored in .diffgate/snapshot.json).
Everything else lives for a single invocation: the command specs parsed
from the command line, the per-command results and the detector decision.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import SNAPSHOT_VERSION


DIGEST_RE = re.compile(r"^sha256:[0-9a-f]{64}$")


def is_storable_path(path: str) -> bool:
    """True if the path is valid UTF-8 and can be written to the snapshot.

    Undecodable file names from git arrive with surrogate escapes.
    """
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


# ============= Persisted State =============

class Snapshot(BaseModel):
    """Content digests of the files seen in previous runs.

    One snapshot per repository root, shared by every glob pattern.
    Paths are repository-relative POSIX strings.
    """

    version: int = SNAPSHOT_VERSION
    files: Dict[str, str] = Field(default_factory=dict)  # path -> sha256:...
    updated: float = Field(default_factory=time.time)

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: int) -> int:
        if value != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {value}")
        return value

    @field_validator("files")
    @classmethod
    def _check_files(cls, files: Dict[str, str]) -> Dict[str, str]:
        for path, digest in files.items():
            if not path or path.startswith("/") or "\\" in path:
                raise ValueError(f"invalid snapshot path {path!r}")
            if ".." in path.split("/"):
                raise ValueError(f"snapshot path escapes repository: {path!r}")
            if not is_storable_path(path):
                raise ValueError(f"snapshot path is not valid UTF-8: {path!r}")
            if not DIGEST_RE.match(digest):
                raise ValueError(f"invalid digest for {path!r}: {digest!r}")
        return files

    def digest_for(self, path: str) -> Optional[str]:
        return self.files.get(path)


# ============= Commands =============

@dataclass(frozen=True)
class CommandSpec:
    """A shell command and the time it is allowed to run."""

    command: str
    timeout: float


class CommandStatus(str, Enum):
    """Outcome of a single command."""

    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ERROR = "error"  # could not be started


@dataclass(slots=True)
class RunResult:
    """Result of running one command."""

    spec: CommandSpec
    status: CommandStatus
    returncode: Optional[int] = None
    output: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == CommandStatus.PASSED

    def describe(self) -> str:
        """One-line outcome for report headers."""
        if self.status == CommandStatus.PASSED:
            return "passed"
        if self.status == CommandStatus.TIMED_OUT:
            return f"timed out after {self.spec.timeout:g}s"
        if self.status == CommandStatus.ERROR:
            return "could not be started"
        return f"exited with status {self.returncode}"


@dataclass
class AggregateResult:
    """Results of all commands, in the order they were given."""

    results: List[RunResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True iff every command exited 0 within its timeout."""
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> List[RunResult]:
        return [r for r in self.results if not r.ok]

    def failure_report(self) -> str:
        """Combined output of every failed command, each under a header.

        Output of passing commands is left out.
        """
        sections = []
        for result in self.failures:
            header = f"=== {result.spec.command} ({result.describe()}) ==="
            body = result.output.rstrip("\n")
            sections.append(f"{header}\n{body}" if body else header)
        return "\n\n".join(sections) + ("\n" if sections else "")


# ============= Change Detection =============

@dataclass
class Decision:
    """Outcome of one change-detection pass."""

    changed: bool
    bootstrap: bool = False
    candidates: List[str] = field(default_factory=list)
    changed_paths: List[str] = field(default_factory=list)
