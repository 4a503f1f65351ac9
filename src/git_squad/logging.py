import logging

import structlog
from rich.console import Console
from rich.markup import escape
from structlog.types import FilteringBoundLogger
from structlog.typing import EventDict

# Diagnostics go to stderr so they never mix with the git report on stdout
console = Console(stderr=True, highlight=False)

# Type alias for our logger
Logger = FilteringBoundLogger


def format_context(event_dict: EventDict) -> str:
    """Format the remaining event context as ``key=value`` pairs.

    Args:
        event_dict: The context dictionary to format.

    Returns:
        The formatted context, sorted by key.
    """
    return " ".join(f"{key}={value!r}" for key, value in sorted(event_dict.items()))


def cli_renderer(
    _logger: Logger,
    method_name: str,
    event_dict: EventDict,
) -> str:
    """Render log messages for CLI output using rich formatting.

    Args:
        logger: The logger instance.
        method_name: The logging method name (e.g., "info", "error").
        event_dict: The event dictionary containing log data.

    Raises:
        structlog.DropEvent: Always, since the message has already been printed.
    """
    level = method_name.upper()
    event_msg = event_dict.pop("event", "")
    for key in ("timestamp", "level"):
        event_dict.pop(key, None)
    exc_info = event_dict.pop("exc_info", None)

    level_styles = {
        "INFO": "blue",
        "WARNING": "yellow",
        "ERROR": "red",
        "DEBUG": "magenta",
        "CRITICAL": "white on red",
    }
    style = level_styles.get(level, "bold cyan")
    log_msg = f"[bold {style}][{level}][/bold {style}] [{style}]{escape(str(event_msg))}[/{style}]"
    context = format_context(event_dict)
    if context:
        log_msg += f" [dim]{escape(context)}[/dim]"
    console.print(log_msg, soft_wrap=True)

    if exc_info:
        console.print_exception()
    raise structlog.DropEvent


def configure_logging(*, verbose: bool = False) -> None:
    """Configure structlog for git-squad.

    Args:
        verbose: Enable verbose/debug output
    """
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="ISO", utc=False),
            structlog.processors.add_log_level,
            cli_renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Logger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
