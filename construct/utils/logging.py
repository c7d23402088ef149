"""Unified logging and debug infrastructure for construct.

This module provides:
1. Centralized logging configuration
2. Verbosity levels mirroring the CLI flags (--ct-verbose, --ct-debug)
3. Debug mode via CONSTRUCT_DEBUG env var or programmatic flag
4. Dual output: Rich console for the CLI, rotating file log for debugging

Usage:
    from construct.utils.logging import get_logger, configure_logging

    # In CLI entry point:
    configure_logging(verbose=ct_verbose, debug=ct_debug)

    # In any module:
    logger = get_logger(__name__)
    logger.info("Network mode: strict")
    logger.warning("Daemon is running an outdated image.")

Console output thresholds:
    default       warnings, errors, success and plain print()
    --ct-verbose  adds info
    --ct-debug    adds debug

Environment Variables:
    CONSTRUCT_DEBUG=1         Enable debug mode (verbose console output)
    CONSTRUCT_LOG_LEVEL=INFO  Set file log level (DEBUG, INFO, WARNING, ERROR)
    CONSTRUCT_LOG_FILE=/path  Override log file location
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

# Global state
_configured = False
_verbose_mode = False
_debug_mode = False
_log_file: Optional[Path] = None

# Shared Rich consoles; user-facing diagnostics go to stderr so agent
# output on stdout stays clean.
console = Console()
err_console = Console(stderr=True)

# Custom log level for success messages
SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


def _get_log_file() -> Path:
    """Get the log file path."""
    global _log_file
    if _log_file:
        return _log_file

    env_log_file = os.environ.get("CONSTRUCT_LOG_FILE")
    if env_log_file:
        _log_file = Path(env_log_file)
    else:
        from construct.paths import HostPaths

        _log_file = HostPaths.log_dir() / "construct.log"

    return _log_file


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode or os.environ.get("CONSTRUCT_DEBUG", "").lower() in ("1", "true", "yes")


def is_verbose_mode() -> bool:
    """Check if informational console output is enabled."""
    return _verbose_mode or is_debug_mode()


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the logging system.

    Should be called once at application startup. Later calls only raise
    the console verbosity, so the CLI can apply its flags after a module
    already triggered the default configuration.

    Args:
        verbose: Show informational messages on the console
        debug: Show debug messages on the console
        log_level: Override file log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Override log file path
    """
    global _configured, _verbose_mode, _debug_mode, _log_file

    _verbose_mode = _verbose_mode or verbose
    _debug_mode = _debug_mode or debug

    if _configured:
        return

    if log_file:
        _log_file = log_file

    if log_level:
        level_name = log_level.upper()
    else:
        level_name = os.environ.get(
            "CONSTRUCT_LOG_LEVEL", "DEBUG" if is_debug_mode() else "INFO"
        ).upper()

    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger("construct")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # File handler with rotation
    try:
        path = _get_log_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
    except OSError:
        # Can't write log file, continue without it
        pass

    _configured = True

    root_logger.debug(
        f"Logging configured: level={level_name}, verbose={_verbose_mode}, debug={_debug_mode}"
    )


def reset_logging() -> None:
    """Forget the current configuration (used by tests and re-entrant CLIs)."""
    global _configured, _verbose_mode, _debug_mode, _log_file

    root_logger = logging.getLogger("construct")
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()
    _configured = False
    _verbose_mode = False
    _debug_mode = False
    _log_file = None


class ConstructLogger:
    """Logging with Rich console output.

    Every message goes to the standard logging tree (and from there to the
    log file); the console echo depends on the configured verbosity.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = err_console

    def debug(self, message: str, console_output: bool = False) -> None:
        """Log debug message.

        Args:
            message: Debug message
            console_output: Force output to console
        """
        self.logger.debug(message)
        if console_output or is_debug_mode():
            self.console.print(f"[dim]Debug: {escape(message)}[/dim]", highlight=False)

    def info(self, message: str, console_output: bool = True) -> None:
        """Log info message (console only in verbose mode)."""
        self.logger.info(message)
        if console_output and is_verbose_mode():
            self.console.print(f"[blue]{escape(message)}[/blue]", highlight=False)

    def success(self, message: str, console_output: bool = True) -> None:
        """Log success message (green output)."""
        self.logger.log(SUCCESS_LEVEL, message)
        if console_output:
            self.console.print(f"[green]✓ {escape(message)}[/green]", highlight=False)

    def warning(self, message: str, console_output: bool = True) -> None:
        """Log warning message (yellow output)."""
        self.logger.warning(message)
        if console_output:
            self.console.print(f"[yellow]⚠ {escape(message)}[/yellow]", highlight=False)

    def error(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        console_output: bool = True,
    ) -> None:
        """Log error message (red output).

        Args:
            message: Error message
            exc: Optional exception to include in log
            console_output: Output to console
        """
        if exc:
            self.logger.error(f"{message}: {exc}", exc_info=exc)
            error_msg = f"{message}: {exc}"
        else:
            self.logger.error(message)
            error_msg = message

        if console_output:
            self.console.print(f"[red]✗ {escape(error_msg)}[/red]", highlight=False)

    def exception(self, message: str, console_output: bool = True) -> None:
        """Log exception with full traceback.

        Call this from within an except block.
        """
        self.logger.exception(message)
        if console_output:
            self.console.print(f"[red]✗ {escape(message)}[/red]", highlight=False)
            if is_debug_mode():
                self.console.print_exception()

    def print(self, message: str, style: Optional[str] = None) -> None:
        """Print to the console without logging.

        Use for user-facing status lines that shouldn't be in logs.
        """
        if style:
            self.console.print(f"[{style}]{escape(message)}[/{style}]", highlight=False)
        else:
            self.console.print(message, highlight=False)


def get_logger(name: str) -> ConstructLogger:
    """Get or create a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        ConstructLogger instance
    """
    if not _configured:
        configure_logging()

    if not name.startswith("construct"):
        name = f"construct.{name}"

    return ConstructLogger(name)


def log_startup_info() -> None:
    """Log startup diagnostic information (call from main entry points)."""
    logger = get_logger("construct.startup")
    logger.debug(f"Python: {sys.version.split()[0]}")
    logger.debug(f"Platform: {sys.platform}")
    logger.debug(f"Log file: {_get_log_file()}")

    for var in ["CONSTRUCT_DEBUG", "CONSTRUCT_LOG_LEVEL"]:
        value = os.environ.get(var)
        if value:
            logger.debug(f"ENV {var}={value}")
