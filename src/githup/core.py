"""
githup: pull, checkout or upgrade branches across several repositories.

Every repository listed on the command line gets its own session; the
sessions run side by side and each prints one aligned report line as soon
as it finishes.
"""

from __future__ import annotations

import json
import subprocess
import sys
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import typer
from rich.console import Console
from rich.markup import escape

from ._logging import create_logger
from ._version import __version__
from .formatters import OutputFormatter, highlight_count, join_fields, right_pad
from .schema import get_tool_schema

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

MASTER_BRANCH = "master"
REMOTE_NAME = "origin"
MASTER_REF = f"{REMOTE_NAME}/{MASTER_BRANCH}"
# What ``rev-parse --abbrev-ref HEAD`` prints when no branch is checked out
DETACHED_HEAD = "HEAD"

# =============================================================================
# Errors
# =============================================================================


class GithupError(Exception):
    """Base class for errors reported against a repository or the caller."""


class GitCommandError(GithupError):
    """A git invocation exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(stderr or f"git {' '.join(args)} exited with status {returncode}")


class StatusError(GitCommandError):
    pass


class FetchError(GitCommandError):
    pass


class PullError(GitCommandError):
    pass


class BranchListError(GitCommandError):
    pass


class CheckoutError(GitCommandError):
    pass


class MergeError(GitCommandError):
    pass


class RevListCountError(GitCommandError):
    pass


class NoTrackingBranchError(GithupError):
    """Pull attempted on a branch without an upstream."""


class MissingBranchArgumentError(GithupError):
    """Checkout requested without a target branch."""


class UnknownCommandError(GithupError):
    """Command name missing from the operations table."""


class NoRepositoriesError(GithupError):
    """No repository path was given."""


# =============================================================================
# Domain Models
# =============================================================================


@dataclass(frozen=True)
class StatusSnapshot:
    """Current and upstream branch of a working copy."""

    current_branch: str
    tracking_branch: str | None = None


@dataclass
class PullOutcome:
    """Per-file line counts brought in by a pull."""

    insertions_by_file: dict[str, int] = field(default_factory=dict)
    deletions_by_file: dict[str, int] = field(default_factory=dict)

    @property
    def total_insertions(self) -> int:
        return sum(self.insertions_by_file.values())

    @property
    def total_deletions(self) -> int:
        return sum(self.deletions_by_file.values())


@dataclass(frozen=True)
class BranchSet:
    """Known local branches and ``remotes/<remote>/<name>`` entries."""

    names: frozenset[str] = frozenset()

    def __contains__(self, name: object) -> bool:
        return name in self.names


@dataclass(frozen=True)
class UpgradeResult:
    commits_ahead: int
    performed_upgrade: bool


@dataclass
class OperationResult:
    """Result of one command against one repository."""

    path: Path
    name: str
    success: bool
    operation: str
    message: str = ""
    error: str = ""


# =============================================================================
# Git backend
# =============================================================================


class GitBackend(Protocol):
    """Version-control operations a session needs, bound to one working copy."""

    def status(self) -> StatusSnapshot: ...

    def fetch(self) -> None: ...

    def list_branches(self) -> BranchSet: ...

    def checkout(self, branch: str) -> None: ...

    def pull(self) -> PullOutcome: ...

    def merge_into(self, source: str, target: str, no_edit: bool = True) -> None: ...

    def count_commits_ahead(self, base_ref: str, head_ref: str) -> int: ...


class GitOperations:
    """Low-level Git operations for a single repository."""

    def __init__(self, repo_path: Path, logger: FilteringBoundLogger | None = None):
        self.repo_path = repo_path
        self.logger = logger if logger is not None else create_logger()

    def _run(self, error_cls: type[GitCommandError], *args: str) -> str:
        """Run a git command in the repository and return its stdout.

        Raises:
            error_cls: When git cannot be started or exits non-zero.
        """
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise error_cls(args, -1, str(e)) from e

        self.logger.debug(
            "git_command", repo=str(self.repo_path), args=list(args), returncode=result.returncode
        )
        if result.returncode != 0:
            raise error_cls(args, result.returncode, result.stderr.strip() or result.stdout.strip())
        return result.stdout

    def status(self) -> StatusSnapshot:
        current = self._run(StatusError, "rev-parse", "--abbrev-ref", "HEAD").strip()
        try:
            tracking = self._run(
                StatusError, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"
            ).strip()
        except StatusError:
            tracking = ""
        return StatusSnapshot(current_branch=current, tracking_branch=tracking or None)

    def fetch(self) -> None:
        self._run(FetchError, "fetch")

    def list_branches(self) -> BranchSet:
        """List local branches and remote-tracking branches."""
        output = self._run(BranchListError, "branch", "--all", "--format=%(refname)")
        names = set()
        for line in output.splitlines():
            ref = line.strip()
            if ref.startswith("refs/heads/"):
                names.add(ref.removeprefix("refs/heads/"))
            elif ref.startswith("refs/remotes/"):
                names.add(ref.removeprefix("refs/"))
        return BranchSet(frozenset(names))

    def checkout(self, branch: str) -> None:
        self._run(CheckoutError, "checkout", branch)

    def pull(self) -> PullOutcome:
        """Pull from the tracking branch and count the lines it changed."""
        before = self._run(PullError, "rev-parse", "HEAD").strip()
        self._run(PullError, "pull")
        numstat = self._run(PullError, "diff", "--numstat", before, "HEAD")
        return parse_numstat(numstat)

    def merge_into(self, source: str, target: str, no_edit: bool = True) -> None:
        """Merge ``source`` into ``target``, which must be checked out."""
        current = self.status().current_branch
        if current != target:
            raise MergeError(
                ("merge", source), -1, f"Cannot merge into {target}: {current} is checked out"
            )
        args = ["merge", "--no-edit", source] if no_edit else ["merge", source]
        self._run(MergeError, *args)

    def count_commits_ahead(self, base_ref: str, head_ref: str) -> int:
        """Count commits reachable from ``base_ref`` but not from ``head_ref``."""
        output = self._run(RevListCountError, "rev-list", "--count", f"{head_ref}..{base_ref}")
        try:
            return int(output.strip())
        except ValueError as e:
            raise RevListCountError(("rev-list", "--count"), 0, f"Unexpected output: {output!r}") from e


def parse_numstat(output: str) -> PullOutcome:
    """Parse ``git diff --numstat`` output; binary files count as zero."""
    outcome = PullOutcome()
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        added, deleted, filename = parts
        outcome.insertions_by_file[filename] = int(added) if added.isdigit() else 0
        outcome.deletions_by_file[filename] = int(deleted) if deleted.isdigit() else 0
    return outcome


# =============================================================================
# Repository Session
# =============================================================================


def resolve_checkout_branch(branch: str, branches: BranchSet) -> str:
    """Return ``branch`` if it exists locally or on origin, else ``master``."""
    if branch in branches or f"remotes/{REMOTE_NAME}/{branch}" in branches:
        return branch
    return MASTER_BRANCH


def strip_remote_prefix(branch: str) -> str:
    """Drop the ``<remote>/`` part of a remote-tracking branch name."""
    return branch.split("/", 1)[1] if "/" in branch else branch


class RepositorySession:
    """Run commands against one repository.

    The session only holds its path and the shared column width; branch
    information is read from git on every call.
    """

    def __init__(self, path: Path, padding_target: int, backend: GitBackend | None = None):
        self.path = path
        self.padding_target = padding_target
        self.backend = backend if backend is not None else GitOperations(path)

    @property
    def name(self) -> str:
        return self.path.name

    def _display_name(self) -> str:
        return escape(right_pad(self.name, self.padding_target))

    def pull(self) -> str:
        """Pull the current branch and report line counts and the master gap."""
        status = self.backend.status()
        if status.tracking_branch is None:
            raise NoTrackingBranchError(
                f"No tracked branch for current branch {status.current_branch}"
            )

        outcome = self.backend.pull()
        master_gap = self.backend.count_commits_ahead(MASTER_REF, "HEAD")

        branch = strip_remote_prefix(status.tracking_branch)
        branch_display = escape(branch) if branch == MASTER_BRANCH else f"[yellow]{escape(branch)}[/]"
        return join_fields(
            self._display_name(),
            highlight_count(outcome.total_insertions, 10),
            highlight_count(outcome.total_deletions, 9),
            highlight_count(master_gap, 10),
            branch_display,
        )

    def checkout(self, branch: str) -> str:
        """Check out ``branch``, falling back to master when it is unknown."""
        self.backend.fetch()
        previous = self.backend.status().current_branch
        branches = self.backend.list_branches()
        resolved = resolve_checkout_branch(branch, branches)
        self.backend.checkout(resolved)

        if resolved == previous:
            change = "-"
        else:
            change = f"[bold]{escape(previous)} ➜ {escape(resolved)}[/]"
        return join_fields(self._display_name(), change)

    def upgrade_branch(self) -> UpgradeResult:
        """Merge an updated master into the current branch.

        No rollback happens on failure: the working copy stays on whatever
        branch the last successful step left it on.
        """
        commits_ahead = self.backend.count_commits_ahead(MASTER_REF, "HEAD")
        if commits_ahead == 0:
            return UpgradeResult(commits_ahead=0, performed_upgrade=False)

        current = self.backend.status().current_branch
        if current == DETACHED_HEAD:
            raise StatusError(
                ("rev-parse", "--abbrev-ref", "HEAD"), 0, "Cannot upgrade a detached HEAD"
            )
        self.backend.checkout(MASTER_BRANCH)
        self.backend.pull()
        self.backend.checkout(current)
        self.backend.merge_into(MASTER_BRANCH, current, no_edit=True)
        return UpgradeResult(commits_ahead=commits_ahead, performed_upgrade=True)

    def upgrade(self) -> str:
        result = self.upgrade_branch()
        return join_fields(self._display_name(), highlight_count(result.commits_ahead))


# =============================================================================
# Fleet Manager
# =============================================================================

Operation = Callable[[RepositorySession, str | None], str]


def _checkout(session: RepositorySession, branch: str | None) -> str:
    if branch is None:
        raise MissingBranchArgumentError("You need to specify a branch to checkout")
    return session.checkout(branch)


OPERATIONS: dict[str, Operation] = {
    "pull": lambda session, _branch: session.pull(),
    "checkout": _checkout,
    "upgrade": lambda session, _branch: session.upgrade(),
}


def get_operation(command: str) -> Operation:
    try:
        return OPERATIONS[command]
    except KeyError:
        raise UnknownCommandError(f"Unknown command: {command}") from None


def default_base_dir() -> Path:
    """Directory one level above the installed package."""
    return Path(__file__).resolve().parent.parent


class FleetManager:
    """Run one command across several repositories."""

    def __init__(
        self,
        repositories: Sequence[str],
        base_dir: Path | None = None,
        max_workers: int | None = None,
        *,
        backend_factory: Callable[[Path], GitBackend] | None = None,
        logger: FilteringBoundLogger | None = None,
    ):
        if not repositories:
            raise NoRepositoriesError("Please provide at least one repository to work on")

        self.base_dir = base_dir if base_dir is not None else default_base_dir()
        self.logger = logger if logger is not None else create_logger()
        # Column width comes from the raw arguments, not the resolved paths
        self.padding_target = max(len(repository) for repository in repositories)
        self.max_workers = max_workers

        factory = backend_factory or (lambda path: GitOperations(path, logger=self.logger))
        self.sessions: list[RepositorySession] = []
        seen: set[Path] = set()
        for repository in repositories:
            path = self.resolve_path(repository)
            # One session per working copy so no two workflows share a checkout
            if path in seen:
                continue
            seen.add(path)
            self.sessions.append(RepositorySession(path, self.padding_target, factory(path)))

    def resolve_path(self, repository: str) -> Path:
        return (self.base_dir / Path(repository).expanduser()).resolve()

    def _execute(
        self,
        command: str,
        operation: Operation,
        session: RepositorySession,
        branch: str | None,
    ) -> OperationResult:
        try:
            line = operation(session, branch)
        except GithupError as e:
            self.logger.info(
                "repository_failed", repo=str(session.path), command=command, error=str(e)
            )
            return OperationResult(
                path=session.path,
                name=session.name,
                success=False,
                operation=command,
                error=str(e),
            )
        return OperationResult(
            path=session.path,
            name=session.name,
            success=True,
            operation=command,
            message=line,
        )

    def run(
        self,
        command: str,
        branch: str | None = None,
        on_result: Callable[[OperationResult], None] | None = None,
    ) -> list[OperationResult]:
        """Run ``command`` on every repository.

        Results are handed to ``on_result`` in completion order.
        """
        operation = get_operation(command)
        self.logger.debug("fleet_started", command=command, count=len(self.sessions))

        results = []
        workers = self.max_workers or len(self.sessions)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._execute, command, operation, session, branch)
                for session in self.sessions
            ]
            for future in as_completed(futures):
                result = future.result()
                if on_result is not None:
                    on_result(result)
                results.append(result)
        return results


# =============================================================================
# CLI
# =============================================================================

REPOSITORY_FLAGS = ("-r", "--repositories")


def expand_repository_args(args: Sequence[str]) -> list[str]:
    """Turn ``-r a b c`` into ``-r a -r b -r c``.

    Every argument after a repository flag up to the next option belongs
    to the flag. A flag with no paths is kept so the parser reports it.
    """
    expanded: list[str] = []
    flag: str | None = None
    consumed = 0
    for arg in args:
        if flag is not None:
            if not arg.startswith("-"):
                expanded.extend([flag, arg])
                consumed += 1
                continue
            if consumed == 0:
                expanded.append(flag)
            flag = None
        if arg in REPOSITORY_FLAGS:
            flag, consumed = arg, 0
        else:
            expanded.append(arg)
    if flag is not None and consumed == 0:
        expanded.append(flag)
    return expanded


app = typer.Typer(
    name="githup",
    help="Pull, checkout or upgrade branches across several Git repositories.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"githup {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output a JSON description of the commands",
    ),
):
    """githup: pull, checkout or upgrade branches across several Git repositories."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter() -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(emoji=False)
    formatter = OutputFormatter(console, Console(stderr=True, emoji=False))
    return console, formatter


def run_command(
    command: str,
    repositories: list[str],
    branch: str | None = None,
    base_dir: Path | None = None,
    workers: int | None = None,
    fail_on_error: bool = False,
):
    """Print the header, then one line per repository as each finishes."""
    _, formatter = get_console_and_formatter()

    try:
        get_operation(command)
        fleet = FleetManager(repositories, base_dir=base_dir, max_workers=workers)
    except GithupError as e:
        formatter.error_console.print(f"[red]Error: {escape(str(e))}[/]", highlight=False)
        raise typer.Exit(1)

    formatter.print_header(command, fleet.padding_target)
    results = fleet.run(command, branch, on_result=formatter.print_result)

    if fail_on_error and any(not r.success for r in results):
        raise typer.Exit(1)


@app.command()
def pull(
    repositories: list[str] = typer.Option(
        ...,
        "--repositories",
        "-r",
        help="Repositories to work on, separated by a space",
    ),
    base_dir: Path = typer.Option(
        None,
        "--base-dir",
        envvar="GITHUP_BASE_DIR",
        help="Directory relative repository paths are resolved against",
    ),
    workers: int = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Maximum number of repositories processed at once",
    ),
    fail_on_error: bool = typer.Option(
        False,
        "--fail-on-error",
        help="Exit with status 1 when any repository fails",
    ),
):
    """Pull from the tracking remote."""
    run_command("pull", repositories, None, base_dir, workers, fail_on_error)


@app.command()
def checkout(
    branch: str = typer.Argument(
        None,
        help="Branch to check out; master is used when it does not exist",
    ),
    repositories: list[str] = typer.Option(
        ...,
        "--repositories",
        "-r",
        help="Repositories to work on, separated by a space",
    ),
    base_dir: Path = typer.Option(
        None,
        "--base-dir",
        envvar="GITHUP_BASE_DIR",
        help="Directory relative repository paths are resolved against",
    ),
    workers: int = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Maximum number of repositories processed at once",
    ),
    fail_on_error: bool = typer.Option(
        False,
        "--fail-on-error",
        help="Exit with status 1 when any repository fails",
    ),
):
    """Checkout the given branch."""
    run_command("checkout", repositories, branch, base_dir, workers, fail_on_error)


@app.command()
def upgrade(
    repositories: list[str] = typer.Option(
        ...,
        "--repositories",
        "-r",
        help="Repositories to work on, separated by a space",
    ),
    base_dir: Path = typer.Option(
        None,
        "--base-dir",
        envvar="GITHUP_BASE_DIR",
        help="Directory relative repository paths are resolved against",
    ),
    workers: int = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Maximum number of repositories processed at once",
    ),
    fail_on_error: bool = typer.Option(
        False,
        "--fail-on-error",
        help="Exit with status 1 when any repository fails",
    ),
):
    """Merge an updated master into the current branch."""
    run_command("upgrade", repositories, None, base_dir, workers, fail_on_error)


def run():
    """Console script entry point."""
    app(args=expand_repository_args(sys.argv[1:]), prog_name="githup")
