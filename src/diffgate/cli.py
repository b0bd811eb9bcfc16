"""CLI for diffgate."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import load_gate_config
from .constants import DIFFGATE_VERSION
from .context import RepoContext
from .core import CommandSpec
from .detector import ChangeDetector
from .errors import ConfigError, DiffgateError
from .matching import validate_pattern
from .runner import CommandRunner
from .state import FileSnapshotStore
from .vcs import DiffScanner


app = typer.Typer(
    help="""\
Run commands only when files matching a glob changed in the git working
tree since the previous invocation. Meant to be called from hooks: the
first call in a checkout records a baseline and runs nothing.""",
    add_completion=False,
)

# Diagnostics and command failure output go to stderr
console = Console(stderr=True)

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Route the package's log records to stderr through Rich."""
    package_logger = logging.getLogger("diffgate")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.addHandler(
        RichHandler(console=console, show_path=False, show_time=False)
    )
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"diffgate {DIFFGATE_VERSION}")
        raise typer.Exit()


def validate_flags(on: Optional[str], commands: List[str], exec_timeout: Optional[float]) -> None:
    """Check command-line values before any git or snapshot work.

    Raises:
        ConfigError: If a required flag is missing or a value is invalid
    """
    if on is None:
        raise ConfigError("--on <glob> is required")
    validate_pattern(on)
    if not any(c.strip() for c in commands):
        raise ConfigError("at least one --exec <command> is required")
    if exec_timeout is not None and exec_timeout <= 0:
        raise ConfigError(f"--exec-timeout must be greater than zero, got {exec_timeout:g}")


def build_specs(commands: List[str], timeout: float) -> List[CommandSpec]:
    """Turn --exec values into command specs sharing one timeout."""
    return [CommandSpec(command=c, timeout=timeout) for c in commands if c.strip()]


@app.command()
def run(
    on: Optional[str] = typer.Option(
        None, "--on", help="Glob of repository-relative files to watch, e.g. 'src/**/*.py' (required)",
        show_default=False,
    ),
    exec_commands: Optional[List[str]] = typer.Option(
        None, "--exec", help="Shell command to run when files changed (required, repeatable)",
        show_default=False,
    ),
    exec_timeout: Optional[float] = typer.Option(
        None, "--exec-timeout", envvar="DIFFGATE_EXEC_TIMEOUT",
        help="Seconds each command may run before it is killed [default: 300]",
        show_default=False,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", envvar="DIFFGATE_VERBOSE", help="Log debug details to stderr"
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Run commands if watched files changed since the last invocation.

    Exit status is 0 when nothing changed or every command passed, and 1
    when a command failed, timed out, or diffgate itself could not run.

    Examples:
        diffgate --on 'src/**/*.py' --exec 'ruff check .'
        diffgate --on '**/*.ts' --exec 'npm run lint' --exec 'npm test' --exec-timeout 120
    """
    _configure_logging(verbose)

    commands = exec_commands or []
    try:
        validate_flags(on, commands, exec_timeout)

        ctx = RepoContext(Path.cwd())
        config = load_gate_config(ctx.root)
        timeout = exec_timeout if exec_timeout is not None else config.exec_timeout
        specs = build_specs(commands, timeout)
        logger.debug("Repository root: %s", ctx.root)

        detector = ChangeDetector(
            store=FileSnapshotStore(),
            scanner=DiffScanner(timeout=config.git_timeout),
            ignore=config.ignore_spec(),
            hash_workers=config.hash_workers,
        )
        decision = detector.evaluate(ctx.root, on)
    except DiffgateError as e:
        console.print(f"[red]error:[/red] {escape(str(e))}", soft_wrap=True)
        raise typer.Exit(1)

    if decision.bootstrap:
        logger.debug("First run: baseline recorded, no commands run")
        raise typer.Exit(0)
    if not decision.changed:
        logger.debug("No changes in %d candidate files", len(decision.candidates))
        raise typer.Exit(0)

    logger.debug("Running %d commands", len(specs))
    result = CommandRunner().run_all(specs)
    if result.succeeded:
        raise typer.Exit(0)

    failures = result.failures
    console.print(
        f"[red]✗[/red] {len(failures)} of {len(result.results)} commands failed "
        f"after changes to: {escape(', '.join(decision.changed_paths))}",
        soft_wrap=True,
    )
    console.out(result.failure_report(), highlight=False, end="")
    raise typer.Exit(1)


def main() -> None:
    """Console script entry point."""
    app(prog_name="diffgate")
