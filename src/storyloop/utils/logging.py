"""Structured logging setup for Storyloop."""

import structlog
from pathlib import Path
from typing import Any, Optional
import os


DEFAULT_LOG_FILE = Path.home() / ".cache" / "storyloop" / "logs" / "storyloop.log"
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def resolve_log_level(verbose: bool = False) -> str:
    """
    Pick the effective log level.

    STORYLOOP_LOG_LEVEL wins when set to a valid level; otherwise ``verbose``
    selects DEBUG and the default is INFO.
    """
    env_level = os.environ.get("STORYLOOP_LOG_LEVEL", "").upper()
    if env_level in VALID_LEVELS:
        return env_level
    return "DEBUG" if verbose else "INFO"


def configure_logging(log_file: Optional[Path] = None, verbose: bool = False) -> Path:
    """
    Configure structlog for JSON logging (one object per line).

    Logs go to ~/.cache/storyloop/logs/storyloop.log unless ``log_file`` is given.

    Log levels:
    - DEBUG: Ignored (no-op) transitions, draft reads, analysis payloads
    - INFO: Variant selection, step changes, gap lifecycle, saves
    - WARNING: Stale results, discarded drafts, failed draft writes
    - ERROR: Analysis service failures, config errors

    Example:
        STORYLOOP_LOG_LEVEL=DEBUG storyloop tailor story.yaml --job-file jd.txt

        # View logs with jq for readability:
        tail -f ~/.cache/storyloop/logs/storyloop.log | jq .

    Returns:
        Path of the log file in use
    """
    log_path = log_file or DEFAULT_LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolve_log_level(verbose)),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=open(log_path, "a")),
        cache_logger_on_first_use=True,
    )
    return log_path


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("workflow_step_advanced", from_step=1, to_step=2)
    """
    return structlog.get_logger(name)
