"""
Logging infrastructure for TruxTrack.

Provides:
- Structured JSON logging for file output
- Rich console output for terminal
- Contextual logging with client/provider/tracking-number context
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from rich.console import Console


CONTEXT_FIELDS = ("client", "provider", "tracking_number")


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=str).decode("utf-8")


# =============================================================================
# JSON Formatter for File Logging
# =============================================================================


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json_dumps(log_data)


# =============================================================================
# Rich Console Handler
# =============================================================================


class RichConsoleHandler(logging.Handler):
    """Handler that outputs to Rich console with formatting."""

    def __init__(self, console: "Console | None" = None, level: int = logging.INFO):
        super().__init__(level)
        if console is None:
            from rich.console import Console
            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)

            style = {
                logging.DEBUG: "dim",
                logging.INFO: "cyan",
                logging.WARNING: "yellow",
                logging.ERROR: "red",
                logging.CRITICAL: "bold red",
            }.get(record.levelno, "default")

            # [provider] [tracking number] prefix
            prefix = ""
            if getattr(record, "provider", None):
                prefix += f"[magenta]\\[{record.provider}][/magenta] "
            if getattr(record, "tracking_number", None):
                prefix += f"[green]\\[{record.tracking_number}][/green] "

            timestamp = datetime.now().strftime("%H:%M:%S")
            self.console.print(
                f"[dim]{timestamp}[/dim] [{style}]{record.levelname:<7}[/{style}] {prefix}{message}",
                markup=True,
                highlight=False,
            )

            if record.exc_info:
                self.console.print_exception()

        except Exception:
            self.handleError(record)


# =============================================================================
# Logger Configuration
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Set up logging for TruxTrack.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file (optional)
        json_format: Use JSON format for file logs
        rich_console: Use Rich for console output

    Returns:
        Root logger for truxtrack
    """
    logger = logging.getLogger("truxtrack")
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    if rich_console:
        console_handler: logging.Handler = RichConsoleHandler()
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    console_handler.setLevel(getattr(logging, level.upper()))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )

        logger.addHandler(file_handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (will be prefixed with 'truxtrack.')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"truxtrack.{name}")
    return logging.getLogger("truxtrack")


# =============================================================================
# Contextual Logging Adapter
# =============================================================================


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that adds tracking context to log records.

    One adapter is handed to each race and provider attempt so that every
    line it emits carries the client, provider and tracking number.
    """

    def __init__(
        self,
        logger: logging.Logger,
        client: str | None = None,
        provider: str | None = None,
        tracking_number: str | None = None,
    ):
        super().__init__(logger, {})
        self.client = client
        self.provider = provider
        self.tracking_number = tracking_number

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})

        if self.client:
            extra["client"] = self.client
        if self.provider:
            extra["provider"] = self.provider
        if self.tracking_number:
            extra["tracking_number"] = self.tracking_number

        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(
        self,
        client: str | None = None,
        provider: str | None = None,
        tracking_number: str | None = None,
    ) -> "ContextualLogger":
        """Create a new logger with additional context."""
        return ContextualLogger(
            self.logger,
            client=client or self.client,
            provider=provider or self.provider,
            tracking_number=tracking_number or self.tracking_number,
        )


def get_contextual_logger(
    name: str | None = None,
    client: str | None = None,
    provider: str | None = None,
    tracking_number: str | None = None,
) -> ContextualLogger:
    """Get a contextual logger with tracking context.

    Args:
        name: Logger name
        client: Client name for context
        provider: Provider name for context
        tracking_number: Tracking number for context

    Returns:
        ContextualLogger instance
    """
    base_logger = get_logger(name)
    return ContextualLogger(
        base_logger,
        client=client,
        provider=provider,
        tracking_number=tracking_number,
    )
