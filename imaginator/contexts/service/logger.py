"""
Service context logger.

Provides logging interface for the service context with automatic [service]
prefix, and the session setup used by the CLI when it hosts a worker.
"""

from pathlib import Path

from loguru import logger

from imaginator.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[service]"


def setup_service_logger(log_dir: Path, endpoint: str, output_dir: Path) -> Path:
    """
    Setup logger for a process hosting a worker.

    Args:
        log_dir: Directory for this session
        endpoint: Endpoint the worker is bound to
        output_dir: Directory receiving rendered images

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="service",
        log_dir=log_dir,
        extra_provenance={"Endpoint": endpoint, "Output directory": output_dir},
    )


def _log_info(message: str) -> None:
    """Log info message with [service] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [service] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [service] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [service] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [service] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")
