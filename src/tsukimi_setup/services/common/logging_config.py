"""
Tsukimi Speaker Setup - Centralized Logging Configuration

Every line goes to the terminal and to an append-only log file, with the
same `[YYYY-MM-DD HH:MM:SS]` prefix. Someone watching a live session and
someone reading the log after a reboot see the same lines.

The preferred log lives in the account's home. If it can't be created, the
log falls back to /tmp, and then to a /tmp name with a timestamp suffix.
"""

import sys
import time
import logging
from pathlib import Path
from typing import List, Optional

from tsukimi_setup.exceptions.log_sink_unavailable_exception import LogSinkUnavailableException

from .file_utils import chown_to_account
from .paths import FALLBACK_DIR, SETUP_LOG_NAME

DEFAULT_LOG_FORMAT = '[%(asctime)s] %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
DEFAULT_LOG_LEVEL = logging.INFO


def _try_create_log_file(path: Path) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'a', encoding='utf-8'):
            pass
        return True
    except OSError:
        return False


def log_sink_candidates(preferred: Path, fallback_dir: Path = FALLBACK_DIR) -> List[Path]:
    """Log locations in the order they are tried."""
    stem = Path(SETUP_LOG_NAME).stem
    suffix = Path(SETUP_LOG_NAME).suffix
    return [
        preferred,
        fallback_dir / SETUP_LOG_NAME,
        fallback_dir / f"{stem}_{int(time.time())}{suffix}",
    ]


def open_log_sink(
    preferred: Path,
    owner: Optional[str] = None,
    fallback_dir: Path = FALLBACK_DIR
) -> Path:
    """
    Return a writable, append-only log file path.

    Args:
        preferred: Canonical log path (normally <home>/tsukimi_setup.log)
        owner: Account to chown the file to when running as root on its behalf
        fallback_dir: World-writable directory used when preferred fails

    Returns:
        Path of the log file that was created or already existed.

    Raises:
        LogSinkUnavailableException: Every candidate failed.
    """
    candidates = log_sink_candidates(preferred, fallback_dir)
    for path in candidates:
        if _try_create_log_file(path):
            if owner:
                chown_to_account(path, owner)
            return path

    raise LogSinkUnavailableException(candidates)


def setup_service_logging(
    service_name: str,
    log_file: Optional[Path] = None,
    level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT
) -> logging.Logger:
    """
    Setup logging for a setup service.

    Configures the root logger so that module loggers (logging.getLogger(__name__))
    in the common package end up in the same places as the service logger.
    Calling it again replaces the previous handlers, which is how the
    orchestrator switches from terminal-only to terminal+file once the log
    sink is open.

    Args:
        service_name: Name of the service (used as logger name, e.g., 'tsukimi-setup')
        log_file: Append-only file to mirror every record to
        level: Logging level (default INFO)
        log_format: Log format string (uses default if not specified)

    Returns:
        Configured logger instance
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, mode='a', encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=DEFAULT_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger(service_name)


def log_service_start(logger: logging.Logger, service_name: str) -> None:
    """
    Log the standard service startup banner.

    Args:
        logger: Logger instance to use
        service_name: Human-readable service name for the banner
    """
    logger.info("=" * 60)
    logger.info(f"{service_name} Starting")
    logger.info("=" * 60)
