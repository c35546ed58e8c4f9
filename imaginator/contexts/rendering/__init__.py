"""
Rendering Context

Responsibilities:
- Defines the Renderer capability (format, process, render)
- Validates and normalizes markup before it is hashed
- Runs the external tools (latex, dvips, convert, dot) that produce images
- Registers renderers under type tags, from code or YAML configuration

Owns: Backend invocation, input validation, renderer registration
Never: Decides what gets rendered or when (see queueing context)
"""

from imaginator.contexts.rendering.base import Renderer, StageResult, run_stage
from imaginator.contexts.rendering.exceptions import (
    ImaginatorError,
    RenderStageError,
    UnknownRendererError,
    ValidationError,
)
from imaginator.contexts.rendering.graphviz import GraphvizRenderer
from imaginator.contexts.rendering.latex import LaTeXRenderer
from imaginator.contexts.rendering.registry import (
    RendererRegistry,
    build_renderer,
    configured_renderers,
    default_renderers,
    load_renderers,
)

__all__ = [
    "Renderer",
    "StageResult",
    "run_stage",
    "LaTeXRenderer",
    "GraphvizRenderer",
    "RendererRegistry",
    "build_renderer",
    "configured_renderers",
    "default_renderers",
    "load_renderers",
    "ImaginatorError",
    "ValidationError",
    "UnknownRendererError",
    "RenderStageError",
]
