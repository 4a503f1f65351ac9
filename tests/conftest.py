from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from git_squad.core import (
    CapturedOutput,
    ExecutionContext,
    GitInvoker,
    Repository,
)
from git_squad.logging import configure_logging


@pytest.fixture(autouse=True)
def _quiet_logging():
    configure_logging(verbose=False)


@dataclass
class Call:
    """One recorded git invocation."""

    global_args: tuple[str, ...]
    command: str
    command_args: tuple[str, ...]
    working_dir: Path | None


@dataclass
class FakeInvoker(GitInvoker):
    """Invoker that answers from a callable instead of running git."""

    respond: Callable[[Call], str] = lambda call: ""
    calls: list[Call] = field(default_factory=list)
    executable: str = "git"

    def run(
        self,
        global_args: Sequence[str],
        command: str,
        command_args: Sequence[str],
        working_dir: Path | None = None,
    ) -> CapturedOutput:
        call = Call(tuple(global_args), command, tuple(command_args), working_dir)
        self.calls.append(call)
        return CapturedOutput(output=self.respond(call))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root with a registry file listing two slaves."""
    root = tmp_path / "project"
    root.mkdir()
    (root / ".gitslaves").write_text(
        "https://example.com/team/lib\n\n# docs live elsewhere\nhttps://example.com/team/docs\n"
    )
    return root


@pytest.fixture
def context(project: Path) -> ExecutionContext:
    return ExecutionContext.create(
        project,
        [
            Repository.slave("https://example.com/team/lib"),
            Repository.slave("https://example.com/team/docs"),
        ],
    )
