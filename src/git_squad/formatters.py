"""Color annotation of the aggregated report for console display."""

from __future__ import annotations

import re

from rich.console import COLOR_SYSTEMS, Console
from rich.style import Style

# Checked in order; the first matching pattern decides the style of a line.
LINE_STYLES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^Repository \(.*\)$"), "bold cyan"),
    (re.compile(r"^On branch "), "bold green"),
    (re.compile(r"^\+"), "green"),
    (re.compile(r"^-"), "red"),
]


def split_lines(text: str) -> list[str]:
    """Split text on newlines only.

    Form feeds and other characters ``str.splitlines`` treats as line
    boundaries stay inside their line. A trailing newline does not produce
    an empty last line.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def terminate_lines(text: str) -> str:
    """Newline-terminate every line of ``text``."""
    return "".join(f"{line}\n" for line in split_lines(text))


class ReportFormatter:
    """Format report text for the console.

    Lines are written to the console file as they are; rich only supplies the
    escape codes around lines matching one of ``LINE_STYLES``, so tabs and
    trailing whitespace from git survive.
    """

    def __init__(self, console: Console):
        self.console = console

    def style_for(self, line: str) -> str | None:
        for pattern, style in LINE_STYLES:
            if pattern.search(line):
                return style
        return None

    def render_line(self, line: str) -> str:
        """Wrap a line in color codes when it matches and the console has color."""
        style = self.style_for(line)
        color_system = self.console.color_system
        if style is None or color_system is None:
            return line
        return Style.parse(style).render(line, color_system=COLOR_SYSTEMS[color_system])

    def render(self, report: str) -> str:
        return "".join(self.render_line(line) + "\n" for line in split_lines(report))

    def print_report(self, report: str):
        """Print the report, colored when the console is a terminal."""
        if not report:
            return
        self.console.file.write(self.render(report))
        self.console.file.flush()
