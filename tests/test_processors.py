"""Tests for the command processors and strategy selection."""

from pathlib import Path

import pytest

from git_squad.core import (
    CloneProcessor,
    CommandProcessor,
    DelegateProcessor,
    ExecutionContext,
    Input,
    PassthroughProcessor,
    Strategy,
    build_processor,
    strategy_for,
)

from .conftest import Call, FakeInvoker


class TestStrategyFor:
    """Tests for strategy selection."""

    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("help", Strategy.PASSTHROUGH),
            ("version", Strategy.PASSTHROUGH),
            ("clone", Strategy.CLONE),
            ("status", Strategy.DELEGATE),
            ("push", Strategy.DELEGATE),
            ("not-a-git-command", Strategy.DELEGATE),
        ],
    )
    def test_strategy_for(self, command: str, expected: Strategy) -> None:
        assert strategy_for(command) == expected

    @pytest.mark.parametrize(
        ("strategy", "expected_class"),
        [
            (Strategy.PASSTHROUGH, PassthroughProcessor),
            (Strategy.CLONE, CloneProcessor),
            (Strategy.DELEGATE, DelegateProcessor),
        ],
    )
    def test_build_processor(
        self, context: ExecutionContext, strategy: Strategy, expected_class: type
    ) -> None:
        processor = build_processor(strategy, context, FakeInvoker())
        assert type(processor) is expected_class
        assert processor.context is context


class TestPassthroughProcessor:
    """Tests for PassthroughProcessor."""

    def test_runs_once_without_working_dir(self, context: ExecutionContext) -> None:
        """Test a single untouched invocation."""
        invoker = FakeInvoker(respond=lambda call: "usage: git [--version]\n")
        result = PassthroughProcessor(context, invoker).process(
            Input(("--no-pager",), "help", ("status",))
        )

        assert result == "usage: git [--version]\n"
        assert invoker.calls == [Call(("--no-pager",), "help", ("status",), None)]


class TestCloneProcessor:
    """Tests for CloneProcessor."""

    def test_clones_only_missing_repositories(
        self, context: ExecutionContext, project: Path
    ) -> None:
        """Test that existing checkouts are skipped."""
        (project / "lib").mkdir()
        invoker = FakeInvoker(respond=lambda call: f"Cloning into '{call.command_args[-1]}'...\n")

        result = CloneProcessor(context, invoker).process(Input((), "clone", ("--depth", "1")))

        assert invoker.calls == [
            Call((), "clone", ("--depth", "1", "https://example.com/team/docs", "docs"), None)
        ]
        assert result == "Cloning into 'docs'...\n"

    def test_concatenates_in_repository_order(self, context: ExecutionContext) -> None:
        invoker = FakeInvoker(respond=lambda call: f"{call.command_args[-1]}\n")
        result = CloneProcessor(context, invoker).process(Input((), "clone", ()))
        assert result == "lib\ndocs\n"

    def test_nothing_to_clone(self, context: ExecutionContext, project: Path) -> None:
        """Test idempotent re-run once everything is checked out."""
        (project / "lib").mkdir()
        (project / "docs").mkdir()
        invoker = FakeInvoker()

        assert CloneProcessor(context, invoker).process(Input((), "clone", ())) == ""
        assert invoker.calls == []


class TestDelegateProcessor:
    """Tests for DelegateProcessor."""

    def test_runs_in_every_repository(self, context: ExecutionContext, project: Path) -> None:
        """Test that each repository gets a -C scoped invocation."""
        invoker = FakeInvoker(respond=lambda call: "ok\n")

        DelegateProcessor(context, invoker).process(Input(("--no-pager",), "log", ("-1",)))

        assert [call.working_dir for call in invoker.calls] == [
            project,
            project / "lib",
            project / "docs",
        ]
        assert all(call.global_args == ("--no-pager",) for call in invoker.calls)
        assert all(call.command_args == ("-1",) for call in invoker.calls)

    def test_missing_checkout_is_not_skipped(self, context: ExecutionContext) -> None:
        invoker = FakeInvoker(respond=lambda call: "")
        DelegateProcessor(context, invoker).process(Input((), "status", ()))
        assert len(invoker.calls) == 3

    def test_aggregates_outputs(self, context: ExecutionContext, project: Path) -> None:
        """Test that identical outputs are merged under sorted labels."""

        def respond(call: Call) -> str:
            if call.working_dir == project / "docs":
                return "On branch gh-pages\n"
            return "On branch main\n"

        result = DelegateProcessor(context, FakeInvoker(respond=respond)).process(
            Input((), "status", ())
        )

        assert result == (
            "Repository (docs)\n\nOn branch gh-pages\n\n"
            "Repository (lib, project)\n\nOn branch main\n\n"
        )

    def test_parallel_matches_sequential(self, context: ExecutionContext) -> None:
        """Test that fan-out keeps attribution and deterministic order."""

        def respond(call: Call) -> str:
            return f"{call.working_dir.name}\n"

        sequential = DelegateProcessor(context, FakeInvoker(respond=respond)).process(
            Input((), "status", ())
        )
        parallel = DelegateProcessor(context, FakeInvoker(respond=respond), max_workers=4).process(
            Input((), "status", ())
        )
        assert parallel == sequential


class TestCommandProcessor:
    """Tests for the CommandProcessor base class."""

    def test_base_class_is_abstract(self, context: ExecutionContext) -> None:
        with pytest.raises(TypeError):
            CommandProcessor(context, FakeInvoker())

    def test_execute_keeps_repository_order(self, context: ExecutionContext) -> None:
        processor = DelegateProcessor(context, FakeInvoker(), max_workers=3)
        labels = processor._execute(lambda repo: repo.label, context.repositories)
        assert labels == ["project", "lib", "docs"]
