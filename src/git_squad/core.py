"""
git-squad: Run one Git command across a master repository and its slaves.

A thin layer over git that lets a single invocation act on the master
repository plus every slave repository listed in its registry file, and
merges identical outputs into one report block.
"""

from __future__ import annotations

import os
import subprocess
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from typer.core import TyperCommand

from .formatters import ReportFormatter, terminate_lines
from .logging import configure_logging, get_logger

logger = get_logger(__name__)

REGISTRY_FILENAME = ".gitslaves"
FALLBACK_COMMAND = "help"

# Subcommands recognized by the command parser. The first of these found in
# the argument list splits it into global args, command and command args.
COMMANDS = frozenset(
    {
        "add",
        "am",
        "apply",
        "archive",
        "bisect",
        "blame",
        "branch",
        "bundle",
        "checkout",
        "cherry",
        "cherry-pick",
        "clean",
        "clone",
        "commit",
        "config",
        "describe",
        "diff",
        "fetch",
        "format-patch",
        "fsck",
        "gc",
        "grep",
        "help",
        "init",
        "log",
        "ls-files",
        "ls-remote",
        "merge",
        "mv",
        "notes",
        "prune",
        "pull",
        "push",
        "rebase",
        "reflog",
        "remote",
        "reset",
        "restore",
        "rev-parse",
        "revert",
        "rm",
        "shortlog",
        "show",
        "stash",
        "status",
        "submodule",
        "switch",
        "tag",
        "version",
        "worktree",
    }
)


# =============================================================================
# Errors
# =============================================================================


class GitSquadError(Exception):
    """Base class for git-squad errors."""


class ConfigurationError(GitSquadError):
    """The project layout or environment cannot be used."""


# =============================================================================
# Domain Models
# =============================================================================


class RepositoryKind(StrEnum):
    """Role of a repository within the project."""

    MASTER = "master"
    SLAVE = "slave"


@dataclass(frozen=True)
class Repository:
    """A master or slave repository."""

    kind: RepositoryKind
    path: str
    remote_url: str = ""

    @classmethod
    def master(cls, root_path: Path | str) -> Repository:
        return cls(kind=RepositoryKind.MASTER, path=str(root_path))

    @classmethod
    def slave(cls, remote_url: str) -> Repository:
        """Build a slave repository checked out under the last URL segment.

        A URL without any separator is used whole as the path.
        """
        path = remote_url.rstrip("/").rsplit("/", 1)[-1] or remote_url
        return cls(kind=RepositoryKind.SLAVE, path=path, remote_url=remote_url)

    @property
    def is_master(self) -> bool:
        return self.kind == RepositoryKind.MASTER

    @property
    def label(self) -> str:
        """Name used in aggregated report headers."""
        return Path(self.path).name or self.path

    def absolute_path(self, root_path: Path | str) -> Path:
        """Resolve the working directory of this repository."""
        if self.is_master:
            return Path(root_path)
        return Path(root_path) / self.path


@dataclass(frozen=True)
class ExecutionContext:
    """Project root and the repositories a command acts on."""

    root_path: Path
    repositories: tuple[Repository, ...]

    @classmethod
    def create(cls, root_path: Path, slaves: Iterable[Repository]) -> ExecutionContext:
        """Combine the master at ``root_path`` with the given slaves."""
        # dict preserves order and drops duplicate registry entries
        repositories = dict.fromkeys([Repository.master(root_path), *slaves])
        return cls(root_path=root_path, repositories=tuple(repositories))

    @classmethod
    def discover(
        cls,
        start: Path | None = None,
        registry_filename: str = REGISTRY_FILENAME,
    ) -> ExecutionContext:
        """Locate the project root from ``start`` and read its registry file."""
        root_path = find_root(start or Path.cwd(), registry_filename)
        slaves = load_registry_file(root_path / registry_filename)
        logger.debug("context_discovered", root=str(root_path), slaves=len(slaves))
        return cls.create(root_path, slaves)


@dataclass(frozen=True)
class Input:
    """Command line split around the recognized git subcommand."""

    global_args: tuple[str, ...]
    command: str
    command_args: tuple[str, ...]


@dataclass
class CapturedOutput:
    """Combined stdout/stderr text of one git invocation."""

    output: str
    returncode: int = 0


@dataclass
class RepositoryOutput:
    """Output of a command for a single repository."""

    label: str
    output: str


@dataclass
class SquadSettings:
    """Runtime settings read from the environment.

    - ``GIT_SQUAD_GIT``: git executable (default ``git``)
    - ``GIT_SQUAD_REGISTRY``: registry filename (default ``.gitslaves``)
    - ``GIT_SQUAD_JOBS``: repositories processed in parallel (default 1)
    - ``GIT_SQUAD_DEBUG``: enable debug logging
    """

    executable: str = "git"
    registry_filename: str = REGISTRY_FILENAME
    max_workers: int = 1
    verbose: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SquadSettings:
        env = os.environ if environ is None else environ

        jobs = env.get("GIT_SQUAD_JOBS", "1")
        try:
            max_workers = int(jobs)
        except ValueError:
            raise ConfigurationError(f"GIT_SQUAD_JOBS must be an integer, got {jobs!r}")
        if max_workers < 1:
            raise ConfigurationError(f"GIT_SQUAD_JOBS must be at least 1, got {max_workers}")

        return cls(
            executable=env.get("GIT_SQUAD_GIT") or "git",
            registry_filename=env.get("GIT_SQUAD_REGISTRY") or REGISTRY_FILENAME,
            max_workers=max_workers,
            verbose=debug_enabled(env),
        )


def debug_enabled(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("GIT_SQUAD_DEBUG", "").lower() in ("1", "true", "yes")


# =============================================================================
# Command Parsing
# =============================================================================


def parse_input(raw_args: Sequence[str]) -> Input:
    """Split raw arguments at the leftmost recognized subcommand.

    Unrecognized input falls back to ``help``.
    """
    for index, token in enumerate(raw_args):
        if token in COMMANDS:
            return Input(
                global_args=tuple(raw_args[:index]),
                command=token,
                command_args=tuple(raw_args[index + 1 :]),
            )
    return Input(global_args=(), command=FALLBACK_COMMAND, command_args=())


# =============================================================================
# Git Invocation (Low-level)
# =============================================================================


class GitInvoker:
    """Run the git executable and capture its combined output."""

    def __init__(self, executable: str = "git"):
        self.executable = executable

    def build_argv(
        self,
        global_args: Sequence[str],
        command: str,
        command_args: Sequence[str],
        working_dir: Path | None = None,
    ) -> list[str]:
        argv = [self.executable, *global_args]
        if working_dir is not None:
            argv += ["-C", str(working_dir)]
        return [*argv, command, *command_args]

    def run(
        self,
        global_args: Sequence[str],
        command: str,
        command_args: Sequence[str],
        working_dir: Path | None = None,
    ) -> CapturedOutput:
        """Run git and return its output whatever the exit status."""
        argv = self.build_argv(global_args, command, command_args, working_dir)
        logger.debug("running_git", argv=argv)
        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError:
            raise ConfigurationError(f"Executable not found: {self.executable}")

        if result.returncode != 0:
            logger.debug("git_exited_nonzero", argv=argv, returncode=result.returncode)
        return CapturedOutput(
            output=terminate_lines(result.stdout),
            returncode=result.returncode,
        )


# =============================================================================
# Output Aggregation
# =============================================================================


def aggregate_outputs(outputs: Iterable[RepositoryOutput]) -> str:
    """Merge repositories that produced identical output into one block each."""
    labels_by_output: dict[str, list[str]] = defaultdict(list)
    for item in outputs:
        labels_by_output[item.output].append(item.label)

    blocks = [
        f"Repository ({', '.join(sorted(labels))})\n\n{output}\n"
        for output, labels in labels_by_output.items()
    ]
    return "".join(sorted(blocks))


# =============================================================================
# Command Processors
# =============================================================================


class Strategy(StrEnum):
    """How a command is applied across the repositories."""

    DELEGATE = "delegate"  # default: every repository, aggregated
    CLONE = "clone"  # missing repositories only
    PASSTHROUGH = "passthrough"  # once, untouched


COMMAND_STRATEGIES: dict[str, Strategy] = {
    "help": Strategy.PASSTHROUGH,
    "version": Strategy.PASSTHROUGH,
    "clone": Strategy.CLONE,
}


def strategy_for(command: str) -> Strategy:
    return COMMAND_STRATEGIES.get(command, Strategy.DELEGATE)


T = TypeVar("T")


class CommandProcessor(ABC):
    """Apply a parsed command to the repositories of a context."""

    def __init__(
        self,
        context: ExecutionContext,
        invoker: GitInvoker,
        max_workers: int = 1,
    ):
        self.context = context
        self.invoker = invoker
        self.max_workers = max_workers

    @abstractmethod
    def process(self, command_input: Input) -> str:
        """Run the command and return the text to report."""

    def _execute(
        self,
        operation: Callable[[Repository], T],
        repos: Sequence[Repository],
    ) -> list[T]:
        """Run operation on repositories, keeping results in repository order."""
        if self.max_workers <= 1 or len(repos) <= 1:
            return [operation(repo) for repo in repos]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(operation, repos))


class PassthroughProcessor(CommandProcessor):
    """Run the command a single time with no repository scoping."""

    def process(self, command_input: Input) -> str:
        return self.invoker.run(
            command_input.global_args,
            command_input.command,
            command_input.command_args,
        ).output


class CloneProcessor(CommandProcessor):
    """Clone the slave repositories that are not checked out yet."""

    def process(self, command_input: Input) -> str:
        root_path = self.context.root_path
        missing = [
            repo
            for repo in self.context.repositories
            if not repo.absolute_path(root_path).exists()
        ]
        logger.debug("cloning_missing", count=len(missing))

        def clone(repo: Repository) -> str:
            return self.invoker.run(
                command_input.global_args,
                command_input.command,
                (*command_input.command_args, repo.remote_url, repo.path),
            ).output

        return "".join(self._execute(clone, missing))


class DelegateProcessor(CommandProcessor):
    """Run the command in every repository and merge identical outputs."""

    def process(self, command_input: Input) -> str:
        root_path = self.context.root_path

        def delegate(repo: Repository) -> RepositoryOutput:
            captured = self.invoker.run(
                command_input.global_args,
                command_input.command,
                command_input.command_args,
                working_dir=repo.absolute_path(root_path),
            )
            return RepositoryOutput(label=repo.label, output=captured.output)

        return aggregate_outputs(self._execute(delegate, self.context.repositories))


def build_processor(
    strategy: Strategy,
    context: ExecutionContext,
    invoker: GitInvoker,
    max_workers: int = 1,
) -> CommandProcessor:
    """Instantiate the processor for a strategy."""
    match strategy:
        case Strategy.PASSTHROUGH:
            processor_class: type[CommandProcessor] = PassthroughProcessor
        case Strategy.CLONE:
            processor_class = CloneProcessor
        case _:
            processor_class = DelegateProcessor
    return processor_class(context, invoker, max_workers)


# =============================================================================
# Root Discovery
# =============================================================================


def find_root(start: Path, registry_filename: str = REGISTRY_FILENAME) -> Path:
    """Find the closest directory at or above ``start`` holding the registry file."""
    start = start.resolve()
    for directory in (start, *start.parents):
        if (directory / registry_filename).is_file():
            return directory
    raise ConfigurationError(
        f"No {registry_filename} file found in {start} or any parent directory"
    )


def load_registry_file(registry_file: Path) -> list[Repository]:
    """Load slave repositories from a registry file (one remote URL per line).

    Supports:
    - Blank lines
    - Comments starting with #
    """
    slaves = []
    with open(registry_file) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                slaves.append(Repository.slave(line))
    return slaves


# =============================================================================
# Orchestration
# =============================================================================


class Orchestrator:
    """Entry point tying parsing, processor selection and execution together."""

    def __init__(
        self,
        context: ExecutionContext,
        invoker: GitInvoker | None = None,
        max_workers: int = 1,
    ):
        self.context = context
        self.invoker = invoker or GitInvoker()
        self.max_workers = max_workers

    def run(self, raw_args: Sequence[str]) -> str:
        """Run a raw git command line across the project and return the report."""
        command_input = parse_input(raw_args)
        strategy = strategy_for(command_input.command)
        logger.debug(
            "dispatching_command",
            command=command_input.command,
            strategy=strategy.value,
            repositories=len(self.context.repositories),
        )
        processor = build_processor(strategy, self.context, self.invoker, self.max_workers)
        return processor.process(command_input)


# =============================================================================
# CLI Application
# =============================================================================


APOLOGY_MESSAGE = "Sorry, something went wrong. Set GIT_SQUAD_DEBUG=1 for details."


class PassthroughCommand(TyperCommand):
    """Command that keeps its raw argument list.

    click drops the ``--`` separator while parsing, but git needs it to tell
    paths from revisions.
    """

    def parse_args(self, ctx, args):
        ctx.meta["raw_args"] = list(args)
        return super().parse_args(ctx, args)


app = typer.Typer(
    name="git-squad",
    help="Run one Git command across a master repository and its slaves.",
    add_completion=False,
)


@app.command(
    cls=PassthroughCommand,
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "allow_interspersed_args": True,
    },
    add_help_option=False,
)
def main(ctx: typer.Context):
    """Forward the command line to git in every repository of the project."""
    console = Console(highlight=False, emoji=False)
    formatter = ReportFormatter(console)

    configure_logging(verbose=debug_enabled())

    try:
        settings = SquadSettings.from_env()
        context = ExecutionContext.discover(registry_filename=settings.registry_filename)
        orchestrator = Orchestrator(
            context,
            GitInvoker(settings.executable),
            max_workers=settings.max_workers,
        )
        report = orchestrator.run(ctx.meta.get("raw_args", ctx.args))
    except ConfigurationError as e:
        console.print(f"ERROR: {e}", markup=False, soft_wrap=True)
        raise typer.Exit(1)
    except Exception:
        logger.debug("unexpected_failure", exc_info=True)
        console.print(APOLOGY_MESSAGE, markup=False, soft_wrap=True)
        raise typer.Exit(1)

    formatter.print_report(report)
