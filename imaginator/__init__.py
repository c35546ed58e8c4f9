"""
IMAGINATOR - cached rendering of LaTeX formulas and Graphviz graphs to images

Turns markup into raster images stored under a content-addressed file name,
so every distinct input is rendered at most once no matter how many clients
ask for it.

Architecture:
- Rendering Context: Renderer backends (LaTeX, Graphviz) and their registry
- Queueing Context: Content cache naming, render queue, single-consumer worker
- Service Context: Endpoint transport, worker handles, lazy spawning, client facade
"""

__version__ = "0.1.4"
