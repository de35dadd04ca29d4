"""githup: pull, checkout or upgrade branches across several Git repositories."""

from ._version import __version__
from .core import (
    BranchSet,
    FleetManager,
    GitBackend,
    GithupError,
    GitOperations,
    OperationResult,
    PullOutcome,
    RepositorySession,
    StatusSnapshot,
    UpgradeResult,
    app,
    run,
)
from .formatters import OutputFormatter, left_pad, render_header, right_pad
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    "run",
    # Models
    "BranchSet",
    "OperationResult",
    "PullOutcome",
    "StatusSnapshot",
    "UpgradeResult",
    # Operations
    "FleetManager",
    "GitBackend",
    "GitOperations",
    "GithupError",
    "RepositorySession",
    # Functions
    "get_tool_schema",
    "left_pad",
    "render_header",
    "right_pad",
    # Formatters
    "OutputFormatter",
]
