"""Logging configuration using loguru."""

import sys
from pathlib import Path
from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    format_string: str | None = None,
    log_format: str = "text",
    json_log_file: str | Path | None = None,
) -> None:
    """
    Configure the loguru logger used by the client.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a text log file. If None, logs only to console.
        rotation: Log rotation size (e.g., "10 MB", "1 day")
        retention: Log retention period (e.g., "7 days", "1 month")
        format_string: Custom console format string. If None, uses CONSOLE_FORMAT.
        log_format: "json", "text", or "both"
        json_log_file: Optional path to a JSONL log file.
                      If None and log_format includes JSON, uses logs/perplexity_client.jsonl.
    """
    logger.remove()

    use_json = log_format in ("json", "both")
    use_text = log_format in ("text", "both")

    if not use_json and not use_text:
        # Unknown option, keep the console output
        use_text = True

    if use_text:
        logger.add(
            sys.stderr,
            format=format_string or CONSOLE_FORMAT,
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if use_text and log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    if use_json:
        json_path = Path(json_log_file) if json_log_file else Path("logs/perplexity_client.jsonl")
        json_path.parent.mkdir(parents=True, exist_ok=True)
        # Structured fields from logger.bind() end up under "extra" in each record
        logger.add(
            str(json_path),
            format="{message}",
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            enqueue=True,
            serialize=True,
        )


# Console-only logging until the application calls setup_logging() itself
setup_logging(log_format="text")

__all__ = ["logger", "setup_logging"]
