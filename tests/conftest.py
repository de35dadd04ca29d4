"""Shared test fixtures for githup tests."""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from githup.core import BranchSet, PullOutcome, StatusSnapshot


@dataclass
class FakeBackend:
    """Recording stand-in for GitOperations.

    ``failures`` maps a method name to the exception it raises.
    """

    current_branch: str = "master"
    tracking_branch: str | None = "origin/master"
    branches: set[str] = field(default_factory=lambda: {"master", "remotes/origin/master"})
    outcome: PullOutcome = field(default_factory=PullOutcome)
    commits_ahead: int = 0
    failures: dict[str, Exception] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)

    def _record(self, name: str, *args: object) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def status(self) -> StatusSnapshot:
        self._record("status")
        return StatusSnapshot(self.current_branch, self.tracking_branch)

    def fetch(self) -> None:
        self._record("fetch")

    def list_branches(self) -> BranchSet:
        self._record("list_branches")
        return BranchSet(frozenset(self.branches))

    def checkout(self, branch: str) -> None:
        self._record("checkout", branch)
        self.current_branch = branch

    def pull(self) -> PullOutcome:
        self._record("pull")
        return self.outcome

    def merge_into(self, source: str, target: str, no_edit: bool = True) -> None:
        self._record("merge_into", source, target, no_edit)

    def count_commits_ahead(self, base_ref: str, head_ref: str) -> int:
        self._record("count_commits_ahead", base_ref, head_ref)
        return self.commits_ahead

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


def run_git(cwd: Path, *args: str) -> str:
    """Run a git command in the given directory."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        msg = f"git {' '.join(args)} failed: {result.stderr}"
        raise RuntimeError(msg)
    return result.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    (repo / name).write_text(content)
    run_git(repo, "add", name)
    run_git(repo, "commit", "-m", message)


@dataclass(frozen=True)
class GitWorkspace:
    """A bare origin with two clones: ``local`` under test and ``other`` to push changes."""

    origin: Path
    local: Path
    other: Path


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate git from the user's configuration."""
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    (tmp_path / "gitconfig").write_text(
        "[init]\n\tdefaultBranch = master\n"
        "[pull]\n\trebase = false\n"
        "[commit]\n\tgpgsign = false\n"
    )


@pytest.fixture
def git_workspace(tmp_path: Path, git_env: None) -> GitWorkspace:
    origin = tmp_path / "origin.git"
    seed = tmp_path / "seed"
    run_git(tmp_path, "init", "--bare", "--initial-branch=master", str(origin))
    run_git(tmp_path, "init", "--initial-branch=master", str(seed))
    commit_file(seed, "README.md", "# Test\n", "Initial commit")
    run_git(seed, "remote", "add", "origin", str(origin))
    run_git(seed, "push", "-u", "origin", "master")

    local = tmp_path / "local"
    other = tmp_path / "other"
    run_git(tmp_path, "clone", str(origin), str(local))
    run_git(tmp_path, "clone", str(origin), str(other))
    return GitWorkspace(origin=origin, local=local, other=other)


@pytest.fixture
def make_backend():
    """Factory for extra FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def git():
    """The ``run_git`` helper, for tests that drive repositories directly."""
    return run_git


@pytest.fixture
def commit():
    """The ``commit_file`` helper."""
    return commit_file
