"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from loguru directly.
"""

from loguru import logger

CONTEXT_PREFIX = "[render]"


# Wrapper functions with automatic [render] prefix


def _log_info(message: str) -> None:
    """Log info message with [render] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [render] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level rendering-specific logging helpers


def log_stage_failure(result) -> None:
    """
    Log a failed external tool stage with its raw output.

    Args:
        result: StageResult of the failed invocation
    """
    _log_error(f"Stage '{result.stage}' failed (status {result.returncode})")
    _log_debug(f"  Command: {' '.join(result.command)}")

    # Raw output keeps the tool's own line breaks out of the log format
    if result.stdout:
        logger.opt(raw=True).debug(
            f"\n{'=' * 80}\n{result.stage.upper()} STDOUT:\n{'=' * 80}\n{result.stdout}\n"
        )
    if result.stderr:
        logger.opt(raw=True).debug(
            f"\n{'=' * 80}\n{result.stage.upper()} STDERR:\n{'=' * 80}\n{result.stderr}\n"
        )
