"""git-squad: Run one Git command across a master repository and its slaves."""

# Guard against a deleted CWD (e.g. the checkout was removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .core import (
    COMMANDS,
    CapturedOutput,
    CloneProcessor,
    CommandProcessor,
    ConfigurationError,
    DelegateProcessor,
    ExecutionContext,
    GitInvoker,
    GitSquadError,
    Input,
    Orchestrator,
    PassthroughProcessor,
    Repository,
    RepositoryKind,
    RepositoryOutput,
    SquadSettings,
    Strategy,
    aggregate_outputs,
    app,
    build_processor,
    find_root,
    load_registry_file,
    parse_input,
    strategy_for,
)
from .formatters import ReportFormatter

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "CapturedOutput",
    "ExecutionContext",
    "Input",
    "Repository",
    "RepositoryKind",
    "RepositoryOutput",
    "SquadSettings",
    "Strategy",
    # Errors
    "ConfigurationError",
    "GitSquadError",
    # Operations
    "CloneProcessor",
    "CommandProcessor",
    "DelegateProcessor",
    "GitInvoker",
    "Orchestrator",
    "PassthroughProcessor",
    # Functions
    "COMMANDS",
    "aggregate_outputs",
    "build_processor",
    "find_root",
    "load_registry_file",
    "parse_input",
    "strategy_for",
    # Formatters
    "ReportFormatter",
]
