"""Logging configuration utilities."""

import sys
from pathlib import Path

from loguru import logger

# Child processes share one PTY between protocol replies and diagnostics;
# lines carrying this prefix are relayed by the referee instead of parsed.
DIAGNOSTIC_PREFIX = "#"


def setup_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """Configure loguru for the referee process.

    The terminal gets short lines since it is shared with the game's prompts;
    the optional file keeps full source locations, one file per game.

    Args:
        level: Minimum log level to display.
        log_file: Optional path to a log file, truncated on open.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> <level>{message}</level>",
        colorize=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level="TRACE" if level.upper() == "TRACE" else "DEBUG",
            format="{time:HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            mode="w",
        )

    logger.debug(f"Referee logging at {level}" + (f", file {log_file}" if log_file else ""))


def setup_child_logging(level: str = "INFO") -> None:
    """Configure loguru inside a child process.

    Records are written to stderr as `# LEVEL | message` lines so the referee
    can tell them apart from protocol replies. Every physical line of a record
    (tracebacks included) carries the prefix.

    Args:
        level: Minimum log level to forward.
    """
    logger.remove()
    logger.add(
        _prefixed_stderr_sink,
        level=level,
        format="{level} | {message}",
        colorize=False,
        backtrace=False,
        diagnose=False,
    )


def _prefixed_stderr_sink(message: str) -> None:
    lines = str(message).rstrip("\n").splitlines() or [""]
    sys.stderr.write("".join(f"{DIAGNOSTIC_PREFIX} {line}\n" for line in lines))
    sys.stderr.flush()
