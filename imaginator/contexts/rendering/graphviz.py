"""Graphviz backend: a single layout-tool invocation writes the image."""

import contextlib
import os
from pathlib import Path

from dotenv import load_dotenv

from imaginator.contexts.rendering.base import Renderer, run_stage

load_dotenv()
GRAPHVIZ_CMD = os.getenv("GRAPHVIZ_CMD", "dot")


class GraphvizRenderer(Renderer):
    """
    Renders a Graphviz graph description with `dot` (or another layout tool).

    The tool writes "<output_path>.part", which is moved onto output_path only
    once the tool has exited successfully.

    Args:
        format: Output format passed to -T (default: "png")
        cmd: Layout executable (default: GRAPHVIZ_CMD from environment, else "dot")
    """

    def __init__(self, format: str = "png", cmd: str = GRAPHVIZ_CMD):
        self._format = format
        self.cmd = cmd

    @property
    def format(self) -> str:
        return self._format

    def process(self, code: str) -> str:
        return code.strip()

    def render(self, code: str, output_path: Path) -> None:
        output_path = Path(output_path)
        part_path = Path(f"{output_path}.part")
        try:
            run_stage(
                "layout",
                [self.cmd, "-T", self.format, "-o", part_path],
                input=code,
            ).raise_for_status()
            os.replace(part_path, output_path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                part_path.unlink()
