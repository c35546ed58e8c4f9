"""
Integration tests for rendering with the real external tools.
"""

import shutil

import pytest

from imaginator.contexts.queueing.exceptions import RenderTimeoutError
from imaginator.contexts.rendering.exceptions import RenderStageError
from imaginator.contexts.rendering.graphviz import GraphvizRenderer
from imaginator.contexts.rendering.latex import LaTeXRenderer
from imaginator.contexts.rendering.registry import default_renderers
from imaginator.contexts.service import RenderService, ServiceLocator

DOT_AVAILABLE = shutil.which("dot") is not None
skip_if_no_dot = pytest.mark.skipif(not DOT_AVAILABLE, reason="Graphviz (dot) not installed")

LATEX_AVAILABLE = all(shutil.which(tool) for tool in ("latex", "dvips", "convert"))
skip_if_no_latex = pytest.mark.skipif(
    not LATEX_AVAILABLE,
    reason="latex, dvips and ImageMagick convert are required",
)


@pytest.fixture
def service(endpoint, tmp_path):
    locator = ServiceLocator(
        endpoint,
        output_dir=tmp_path / "images",
        renderers=default_renderers(),
        idle_timeout=5,
        poll_interval=0.1,
        poll_attempts=300,
        events_file=None,
    )
    yield RenderService(locator=locator)
    locator.shutdown(timeout=30)


@pytest.mark.integration
@pytest.mark.graphviz
@skip_if_no_dot
def test_graphviz_renderer_writes_png(tmp_path):
    output = tmp_path / "graph.png"

    GraphvizRenderer().render("digraph { a -> b }", output)

    assert output.read_bytes().startswith(b"\x89PNG")


@pytest.mark.integration
@pytest.mark.graphviz
@skip_if_no_dot
def test_graphviz_syntax_error(tmp_path):
    with pytest.raises(RenderStageError) as exc_info:
        GraphvizRenderer().render("digraph { a -> ", tmp_path / "graph.png")

    assert exc_info.value.stage == "layout"


@pytest.mark.integration
@pytest.mark.graphviz
@skip_if_no_dot
def test_render_graph_end_to_end(service):
    path = service.render("graphviz", "digraph { a -> b }")

    assert path.endswith(".png")
    with open(path, "rb") as f:
        assert f.read(4) == b"\x89PNG"


@pytest.mark.integration
@pytest.mark.graphviz
@skip_if_no_dot
def test_broken_graph_times_out(service):
    name = service.enqueue("graphviz", "digraph { a -> ")

    with pytest.raises(RenderTimeoutError):
        service.result(name)


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_latex
def test_latex_renderer_writes_png(tmp_path):
    output = tmp_path / "formula.png"

    LaTeXRenderer(debug=False).render(r"\frac{a}{b}", output)

    assert output.read_bytes().startswith(b"\x89PNG")
    assert not (tmp_path / "formula.png-tmp").exists()


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_latex
def test_render_formula_end_to_end(service):
    path = service.render("latex", r"e^{i\pi} + 1 = 0")

    with open(path, "rb") as f:
        assert f.read(4) == b"\x89PNG"
