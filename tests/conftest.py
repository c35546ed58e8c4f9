"""Shared fixtures: in-process renderers and short socket paths."""

import shutil
import tempfile
import threading
from pathlib import Path

import pytest

from imaginator.contexts.rendering.base import Renderer
from imaginator.contexts.rendering.exceptions import RenderStageError, ValidationError
from imaginator.contexts.rendering.registry import RendererRegistry


class EchoRenderer(Renderer):
    """Writes the processed code itself as the "image"."""

    def __init__(self, format: str = "txt", delay: float = 0.0):
        self._format = format
        self.delay = delay
        self.rendered = []

    @property
    def format(self) -> str:
        return self._format

    def process(self, code: str) -> str:
        if "forbidden" in code:
            raise ValidationError("Invalid commands forbidden", tokens=["forbidden"])
        return code.strip()

    def render(self, code: str, output_path: Path) -> None:
        if self.delay:
            threading.Event().wait(self.delay)
        self.rendered.append(code)
        Path(output_path).write_text(code, encoding="utf-8")


class BrokenRenderer(EchoRenderer):
    """Fails every render like a tool exiting with status 1."""

    def render(self, code: str, output_path: Path) -> None:
        raise RenderStageError(stage="layout", command=["broken"], returncode=1, output="boom")


@pytest.fixture
def echo_renderer():
    return EchoRenderer()


@pytest.fixture
def registry(echo_renderer):
    return RendererRegistry({"echo": echo_renderer, "broken": BrokenRenderer()})


@pytest.fixture
def socket_dir():
    """Short directory for Unix sockets (tmp_path can exceed the sun_path limit)."""
    path = Path(tempfile.mkdtemp(prefix="img"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def endpoint(socket_dir):
    return f"unix://{socket_dir / 'w.sock'}"
