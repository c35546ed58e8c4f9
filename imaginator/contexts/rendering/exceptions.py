"""Exceptions for the rendering context, shared by the other contexts."""

from typing import List, Optional, Sequence


class ImaginatorError(Exception):
    """Base class for every error raised by IMAGINATOR."""


class ValidationError(ImaginatorError, ValueError):
    """
    Exception raised when input is rejected before a job is created.

    Attributes:
        message: Error description
        tokens: Forbidden tokens found in the input (empty for other violations)
    """

    def __init__(self, message: str, tokens: Optional[Sequence[str]] = None):
        self.message = message
        self.tokens: List[str] = list(tokens or [])
        super().__init__(message)


class UnknownRendererError(ImaginatorError, KeyError):
    """
    Exception raised when no renderer is registered for a type tag.

    Attributes:
        kind: The requested type tag
        available: Tags that are registered
    """

    def __init__(self, kind: str, available: Optional[Sequence[str]] = None):
        self.kind = kind
        self.available = sorted(available or [])
        message = f"Renderer not found: {kind}"
        if self.available:
            message += f" (registered: {', '.join(self.available)})"
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.message


class RenderStageError(ImaginatorError, RuntimeError):
    """
    Exception raised when an external tool invocation fails during rendering.

    Only ever seen by the worker loop, which logs it and moves on.

    Attributes:
        stage: Name of the failed stage (e.g., "latex", "dvips", "convert", "layout")
        command: The command line that was run
        returncode: Exit status (None if the tool could not be started)
        output: Captured stdout/stderr of the tool
    """

    def __init__(
        self,
        stage: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ):
        self.stage = stage
        self.command = list(command or [])
        self.returncode = returncode
        self.output = output

        parts = [f"Stage '{stage}' failed"]
        if self.command:
            parts.append(f"running {self.command[0]}")
        if returncode is not None:
            parts.append(f"with status {returncode}")
        else:
            parts.append("to start")

        super().__init__(" ".join(parts))
