"""
Content-addressed output naming.

The output file of a job is named after the MD5 digest of the renderer's
processed input plus the renderer's format. The file system is the cache:
a file of that name existing means the input was already rendered.
"""

import hashlib
from pathlib import Path
from typing import Tuple

from imaginator.contexts.rendering.exceptions import ValidationError
from imaginator.contexts.rendering.registry import RendererRegistry


def content_hash(code: str) -> str:
    """128-bit MD5 hex digest of the UTF-8 encoded code."""
    return hashlib.md5(code.encode("utf-8")).hexdigest()


class ContentCache:
    """
    Maps (type, input) pairs to output names and paths in output_dir.

    Args:
        output_dir: Directory holding rendered images
        renderers: Registry used to process input and pick the format
    """

    def __init__(self, output_dir: Path, renderers: RendererRegistry):
        self.output_dir = Path(output_dir)
        self.renderers = renderers

    def prepare(self, kind: str, code: str) -> Tuple[str, str]:
        """
        Process input and derive its output name.

        Returns:
            Tuple of (name, processed code)

        Raises:
            UnknownRendererError: If kind is not registered
            ValidationError: If the renderer rejects the input
        """
        renderer = self.renderers.get(kind)
        processed = renderer.process(code)
        return f"{content_hash(processed)}.{renderer.format}", processed

    def name(self, kind: str, code: str) -> str:
        """Output name for an input; identical processed input gives the identical name."""
        return self.prepare(kind, code)[0]

    def path(self, name: str) -> Path:
        """
        Path of an output name inside output_dir.

        Raises:
            ValidationError: If name is not a plain file name
        """
        if not name or name in (".", "..") or Path(name).name != name or "\\" in name:
            raise ValidationError(f"Invalid output name: {name!r}")
        return self.output_dir / name

    def is_cached(self, name: str) -> bool:
        """Whether the output file exists (checked on disk every time)."""
        return self.path(name).exists()
