"""Concurrent execution of the configured shell commands."""

import logging
import os
import signal
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .core import AggregateResult, CommandSpec, CommandStatus, RunResult

logger = logging.getLogger(__name__)

# Time allowed to drain a killed command's pipes
KILL_GRACE_SECONDS = 5.0


def _popen_kwargs() -> dict:
    """Start each command in its own process group so a timeout can take
    down everything it spawned."""
    if os.name == "posix":
        return {"start_new_session": True}
    return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill a command and, best-effort, its descendants."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class CommandRunner:
    """Runs every command at once, each under its own timeout, and waits
    for all of them.

    One command failing or timing out never affects the others.
    """

    def __init__(self, cwd: Optional[Path] = None, env: Optional[Dict[str, str]] = None):
        """
        Args:
            cwd: Working directory for the commands (default: current)
            env: Extra environment variables layered over os.environ
        """
        self.cwd = cwd
        self.env = {**os.environ, **(env or {})}

    def run_one(self, spec: CommandSpec) -> RunResult:
        """Run a single command through the shell and capture its output."""
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                spec.command,
                shell=True,
                cwd=self.cwd,
                env=self.env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                **_popen_kwargs(),
            )
        except OSError as e:
            logger.debug("Could not start %r: %s", spec.command, e)
            return RunResult(
                spec=spec,
                status=CommandStatus.ERROR,
                output=str(e),
                duration=time.monotonic() - start,
            )

        try:
            output, _ = proc.communicate(timeout=spec.timeout)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            try:
                output, _ = proc.communicate(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                # A descendant left the process group and still holds the pipe
                proc.wait()
                output = ""
            duration = time.monotonic() - start
            logger.debug("%r timed out after %.2fs", spec.command, duration)
            return RunResult(
                spec=spec,
                status=CommandStatus.TIMED_OUT,
                returncode=proc.returncode,
                output=output or "",
                duration=duration,
            )

        duration = time.monotonic() - start
        status = CommandStatus.PASSED if proc.returncode == 0 else CommandStatus.FAILED
        logger.debug("%r %s in %.2fs (exit %s)", spec.command, status.value, duration, proc.returncode)
        return RunResult(
            spec=spec,
            status=status,
            returncode=proc.returncode,
            output=output or "",
            duration=duration,
        )

    def run_all(self, specs: Sequence[CommandSpec]) -> AggregateResult:
        """Run all commands concurrently and collect their results.

        Args:
            specs: Commands to run

        Returns:
            AggregateResult with one result per spec, in spec order
        """
        if not specs:
            return AggregateResult()

        slots: List[Optional[RunResult]] = [None] * len(specs)
        with ThreadPoolExecutor(max_workers=len(specs)) as pool:
            futures = {pool.submit(self.run_one, spec): i for i, spec in enumerate(specs)}
            for future, index in futures.items():
                slots[index] = future.result()

        return AggregateResult(results=[r for r in slots if r is not None])
