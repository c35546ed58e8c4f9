"""
Queueing context logger.

Provides logging interface for the render queue and worker with automatic
[worker] prefix.
"""

from loguru import logger

CONTEXT_PREFIX = "[worker]"


def _log_info(message: str) -> None:
    """Log info message with [worker] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [worker] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [worker] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [worker] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [worker] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_render_start(job, pending: int) -> None:
    """Log the start of a render with queue depth."""
    _log_info(f"Rendering {job.name} ({job.kind})")
    _log_debug(f"  Pending jobs: {pending}")


def log_render_result(job, error: Exception = None, elapsed_time: float = 0.0) -> None:
    """
    Log the outcome of one render attempt.

    Args:
        job: RenderJob that was attempted
        error: Exception raised by the renderer (None on success)
        elapsed_time: Seconds spent rendering
    """
    if error is None:
        _log_success(f"{job.name}: rendered ({elapsed_time:.2f}s)")
    else:
        _log_error(f"{job.name}: render failed ({elapsed_time:.2f}s): {error}")
