"""
Renderer capability contract.

Every backend turns a piece of markup into exactly one image file. The worker
only talks to backends through this interface, so adding a backend means
subclassing Renderer and registering an instance under a type tag.
"""

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from imaginator.contexts.rendering.exceptions import RenderStageError
from imaginator.contexts.rendering.logger import _log_debug, log_stage_failure


@dataclass
class StageResult:
    """
    Outcome of one external tool invocation.

    Attributes:
        stage: Stage name (e.g., "latex", "dvips", "convert", "layout")
        command: Command line that was run
        returncode: Exit status (None if the executable could not be started)
        stdout: Standard output of the tool
        stderr: Standard error of the tool
    """

    stage: str
    command: List[str] = field(default_factory=list)
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def raise_for_status(self) -> "StageResult":
        """Raise RenderStageError if the stage failed, otherwise return self."""
        if not self.ok:
            log_stage_failure(self)
            raise RenderStageError(
                stage=self.stage,
                command=self.command,
                returncode=self.returncode,
                output="\n".join(part for part in (self.stdout, self.stderr) if part),
            )
        return self


def run_stage(
    stage: str,
    command: Sequence[Union[str, Path]],
    cwd: Optional[Path] = None,
    input: Optional[str] = None,
) -> StageResult:
    """
    Run one external command and capture its outcome.

    Never raises for a failing tool: a non-zero exit or a missing executable
    is reported through the returned StageResult.

    Args:
        stage: Stage name used in logs and errors
        command: Executable and arguments
        cwd: Working directory for the tool
        input: Text written to the tool's stdin

    Returns:
        StageResult for the invocation
    """
    command = [str(part) for part in command]
    _log_debug(f"Running {stage}: {' '.join(command)}")

    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            input=input,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",  # Tool output is not always valid UTF-8
        )
    except OSError as e:
        return StageResult(stage=stage, command=command, returncode=None, stderr=str(e))

    return StageResult(
        stage=stage,
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


class Renderer(ABC):
    """
    Interface implemented by every rendering backend.

    Subclasses must provide:
    - format: output file extension, fixed per instance
    - process(): validate and normalize raw input (raises ValidationError)
    - render(): write the image for already-processed input to output_path
    """

    @property
    @abstractmethod
    def format(self) -> str:
        """Output file extension (e.g., "png")."""

    @abstractmethod
    def process(self, code: str) -> str:
        """
        Validate and normalize raw input.

        The returned string is used both for content hashing and for render().

        Raises:
            ValidationError: If the input violates backend safety rules
        """

    @abstractmethod
    def render(self, code: str, output_path: Path) -> None:
        """
        Render processed input to output_path.

        Raises:
            RenderStageError: If an external tool invocation fails
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(format={self.format!r})"
