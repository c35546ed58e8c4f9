"""
Renderer Registry

Maps type tags ("latex", "graphviz", ...) to Renderer instances, and builds
registries from YAML configuration.

Configuration format (loaded with OmegaConf):

    renderers:
      latex:
        format: png
        convert_opts: "-trim -density 150"
        debug: false
      dot:
        backend: graphviz    # defaults to the entry's own name
        format: svg
        cmd: dot
"""

import os
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Type, Union

from dotenv import load_dotenv
from omegaconf import OmegaConf

from imaginator.contexts.rendering.base import Renderer
from imaginator.contexts.rendering.exceptions import UnknownRendererError
from imaginator.contexts.rendering.graphviz import GraphvizRenderer
from imaginator.contexts.rendering.latex import LaTeXRenderer

load_dotenv()
RENDERERS_CONFIG = os.getenv("IMAGINATOR_RENDERERS_CONFIG") or None

RENDERER_TYPES: Dict[str, Type[Renderer]] = {
    "latex": LaTeXRenderer,
    "graphviz": GraphvizRenderer,
}


class RendererRegistry:
    """
    Registry of renderers keyed by type tag.

    A frozen registry (see freeze()) rejects further registrations; workers
    only ever hold frozen registries so their set of types cannot change
    while they run.
    """

    def __init__(self, renderers: Optional[Mapping[str, Renderer]] = None):
        self._renderers: Dict[str, Renderer] = {}
        self._frozen = False
        for kind, renderer in (renderers or {}).items():
            self.register(kind, renderer)

    def register(self, kind: str, renderer: Renderer) -> "RendererRegistry":
        """
        Register a renderer under a type tag, replacing any previous one.

        Raises:
            RuntimeError: If the registry is frozen
            TypeError: If renderer does not implement Renderer
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register '{kind}': renderer registry is frozen")
        if not isinstance(renderer, Renderer):
            raise TypeError(f"Expected a Renderer for '{kind}', got {type(renderer).__name__}")
        self._renderers[str(kind)] = renderer
        return self

    def get(self, kind: str) -> Renderer:
        """
        Look up the renderer for a type tag.

        Raises:
            UnknownRendererError: If nothing is registered under kind
        """
        try:
            return self._renderers[str(kind)]
        except KeyError:
            raise UnknownRendererError(str(kind), available=self._renderers.keys()) from None

    def kinds(self) -> List[str]:
        return sorted(self._renderers)

    def freeze(self) -> "RendererRegistry":
        """Return a frozen copy of this registry."""
        frozen = RendererRegistry(self._renderers)
        frozen._frozen = True
        frozen._renderers = MappingProxyType(dict(frozen._renderers))
        return frozen

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, kind: object) -> bool:
        return kind in self._renderers

    def __iter__(self) -> Iterator[str]:
        return iter(self.kinds())

    def __len__(self) -> int:
        return len(self._renderers)

    def __repr__(self) -> str:
        return f"RendererRegistry({dict(self._renderers)!r})"


def build_renderer(backend: str, **options) -> Renderer:
    """
    Construct a renderer by backend name.

    Args:
        backend: Key of RENDERER_TYPES (e.g., "latex", "graphviz")
        **options: Keyword arguments for the backend's constructor

    Raises:
        UnknownRendererError: If backend is not a known backend
    """
    try:
        renderer_class = RENDERER_TYPES[backend]
    except KeyError:
        raise UnknownRendererError(backend, available=RENDERER_TYPES.keys()) from None
    return renderer_class(**options)


def default_renderers() -> RendererRegistry:
    """Registry with the LaTeX and Graphviz backends under their own names."""
    return RendererRegistry({kind: build_renderer(kind) for kind in RENDERER_TYPES})


def load_renderers(config_path: Union[str, Path]) -> RendererRegistry:
    """
    Build a registry from a YAML configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        RendererRegistry with one renderer per entry of the "renderers" section

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the "renderers" section is missing or empty
        UnknownRendererError: If an entry names an unknown backend
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Renderer configuration not found: {config_path}")

    config = OmegaConf.to_container(OmegaConf.load(config_path), resolve=True) or {}
    entries = config.get("renderers") if isinstance(config, dict) else None
    if not entries:
        raise ValueError(f"No renderers configured in {config_path}")

    registry = RendererRegistry()
    for kind, options in entries.items():
        options = dict(options or {})
        backend = options.pop("backend", kind)
        registry.register(kind, build_renderer(backend, **options))
    return registry


def configured_renderers(config_path: Optional[Union[str, Path]] = RENDERERS_CONFIG) -> RendererRegistry:
    """Renderers from config_path if given, otherwise the defaults."""
    if config_path:
        return load_renderers(config_path)
    return default_renderers()
