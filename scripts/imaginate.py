#!/usr/bin/env python3
"""
Formula and Graph Rendering CLI

Renders LaTeX formulas and Graphviz graphs to cached images through the
shared render worker, starting one when none is running.

Commands:
    enqueue - Queue markup for rendering and print the output name
              (waits for a worker it had to spawn itself)
    result  - Wait for a queued render and print the image path
    render  - Queue markup and wait for the image
    serve   - Host a worker in the foreground until it goes idle
    status  - Show the worker bound to the endpoint
    events  - Show recent job events

Examples:\n

    imaginate.py render latex '\\frac{a}{b}'                 # Render a formula

    imaginate.py render graphviz --file graph.dot            # Render a graph file

    echo 'digraph{a->b}' | imaginate.py enqueue graphviz -   # Read code from stdin

    imaginate.py serve --idle-timeout 0 --log-dir outs/logs  # Long-running worker
"""

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from imaginator.contexts.queueing.exceptions import RenderTimeoutError
from imaginator.contexts.queueing.worker import IDLE_TIMEOUT
from imaginator.contexts.rendering.exceptions import UnknownRendererError, ValidationError
from imaginator.contexts.rendering.registry import RENDERERS_CONFIG, configured_renderers
from imaginator.contexts.service import (
    DEFAULT_ENDPOINT,
    RemoteHandle,
    RenderService,
    ServiceLocator,
)
from imaginator.contexts.service.locator import OUTPUT_PATH
from imaginator.contexts.service.logger import setup_service_logger
from imaginator.utils.event_logging import EVENTS_FILE, get_recent_events
from imaginator.utils.timestamp import format_timestamp, now

load_dotenv()
LOGS_PATH = os.getenv("IMAGINATOR_LOGS_PATH") or None

app = typer.Typer(
    help="Render LaTeX formulas and Graphviz graphs to cached images",
    add_completion=False,
    invoke_without_command=True,
)

EndpointOption = Annotated[
    str, typer.Option("--endpoint", "-e", help="Worker endpoint (unix:///path.sock or tcp://host:port)")
]
OutputDirOption = Annotated[
    Path, typer.Option("--output-dir", "-o", help="Directory for rendered images")
]
ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Renderer configuration (YAML)")
]


def read_code(code: Optional[str], file: Optional[Path]) -> str:
    """Code from the argument, a file, or stdin when the argument is '-'."""
    if file is not None:
        return file.read_text(encoding="utf-8")
    if code is None:
        typer.secho("Error: give CODE, '-' for stdin, or --file\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    if code == "-":
        return sys.stdin.read()
    return code


def make_service(endpoint: str, output_dir: Path, config: Optional[Path]) -> RenderService:
    locator = ServiceLocator(
        endpoint,
        output_dir=output_dir,
        renderers=configured_renderers(config or RENDERERS_CONFIG),
    )
    return RenderService(locator=locator)


def finish(locator: ServiceLocator) -> None:
    """Let a worker spawned by this command drain its queue before exiting."""
    if locator.handle is not None and locator.handle.is_local:
        typer.echo("Waiting for the local worker to finish...", err=True)
        locator.shutdown()


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("enqueue")
def enqueue_command(
    kind: Annotated[str, typer.Argument(help="Renderer type (e.g., latex, graphviz)")],
    code: Annotated[Optional[str], typer.Argument(help="Markup, or '-' to read stdin")] = None,
    file: Annotated[Optional[Path], typer.Option("--file", "-f", help="Read markup from file", exists=True)] = None,
    endpoint: EndpointOption = DEFAULT_ENDPOINT,
    output_dir: OutputDirOption = OUTPUT_PATH,
    config: ConfigOption = None,
):
    """
    Queue markup for rendering and print the output name.

    If no worker is running, this command spawns one and waits for the locally
    spawned worker to finish (the render included) before exiting. Run
    `imaginate.py serve` to keep a worker up so enqueue returns immediately.

    Examples:\n

        $ imaginate.py enqueue latex 'e^{i\\pi} + 1 = 0'
    """
    service = make_service(endpoint, output_dir, config)
    try:
        name = service.enqueue(kind, read_code(code, file))
        typer.echo(name)
    except (ValidationError, UnknownRendererError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        finish(service.locator)


@app.command("result")
def result_command(
    name: Annotated[str, typer.Argument(help="Output name returned by enqueue")],
    endpoint: EndpointOption = DEFAULT_ENDPOINT,
    output_dir: OutputDirOption = OUTPUT_PATH,
    config: ConfigOption = None,
):
    """Wait for a render and print the image path."""
    service = make_service(endpoint, output_dir, config)
    try:
        path = service.result(name)
    except (RenderTimeoutError, ValidationError) as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        finish(service.locator)

    typer.echo(path)


@app.command("render")
def render_command(
    kind: Annotated[str, typer.Argument(help="Renderer type (e.g., latex, graphviz)")],
    code: Annotated[Optional[str], typer.Argument(help="Markup, or '-' to read stdin")] = None,
    file: Annotated[Optional[Path], typer.Option("--file", "-f", help="Read markup from file", exists=True)] = None,
    endpoint: EndpointOption = DEFAULT_ENDPOINT,
    output_dir: OutputDirOption = OUTPUT_PATH,
    config: ConfigOption = None,
):
    """
    Queue markup, wait for the image, and print its path.

    Examples:\n

        $ imaginate.py render graphviz 'digraph{a->b}'

        $ imaginate.py render latex --file formula.tex
    """
    service = make_service(endpoint, output_dir, config)
    try:
        path = service.render(kind, read_code(code, file))
    except (ValidationError, UnknownRendererError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except RenderTimeoutError as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        finish(service.locator)

    typer.secho(f"✓ {path}", fg=typer.colors.GREEN, err=True)
    typer.echo(path)


@app.command("serve")
def serve_command(
    endpoint: EndpointOption = DEFAULT_ENDPOINT,
    output_dir: OutputDirOption = OUTPUT_PATH,
    config: ConfigOption = None,
    idle_timeout: Annotated[
        float,
        typer.Option("--idle-timeout", "-i", help="Seconds without jobs before exiting (0: never)", min=0),
    ] = IDLE_TIMEOUT,
    log_dir: Annotated[
        Optional[Path], typer.Option("--log-dir", "-l", help="Write a session log under this directory")
    ] = LOGS_PATH,
    events_file: Annotated[
        Optional[Path], typer.Option("--events", help="Append job events to this JSON Lines file")
    ] = EVENTS_FILE,
):
    """
    Host a render worker in the foreground.

    Exits when the worker goes idle (or on Ctrl-C). Fails if another worker
    already answers on the endpoint.
    """
    if log_dir is not None:
        log_file = setup_service_logger(log_dir / f"serve_{now()}", endpoint, output_dir)
        typer.echo(f"Log: {log_file}", err=True)

    locator = ServiceLocator(
        endpoint,
        output_dir=output_dir,
        renderers=configured_renderers(config or RENDERERS_CONFIG),
        idle_timeout=idle_timeout or None,
        events_file=events_file,
    )
    handle = locator.resolve()
    if not handle.is_local:
        typer.secho(f"✗ A worker is already running on {endpoint}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    status = handle.status()
    typer.secho(f"Serving on {locator.endpoint}", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"  Worker: {status['worker_id']}")
    typer.echo(f"  Renderers: {', '.join(status['renderers'])}")
    typer.echo(f"  Output: {status['output_dir']}")

    try:
        locator.join()
    except KeyboardInterrupt:
        typer.echo("\nStopping...")
        locator.shutdown()
    typer.secho("Worker stopped", fg=typer.colors.GREEN)


@app.command("status")
def status_command(endpoint: EndpointOption = DEFAULT_ENDPOINT):
    """Show the worker bound to the endpoint, without spawning one."""
    handle = RemoteHandle(endpoint)
    if not handle.ping():
        typer.secho(f"No worker on {endpoint}", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    status = handle.status()
    typer.secho(f"Worker {status['worker_id']} (pid {status['pid']})", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  Renderers: {', '.join(status['renderers'])}")
    typer.echo(f"  Output: {status['output_dir']}")
    typer.echo(f"  Pending jobs: {status['pending']}")
    for name in status["jobs"]:
        typer.echo(f"    - {name}")


@app.command("events")
def events_command(
    events_file: Annotated[
        Optional[Path], typer.Option("--events", help="JSON Lines job event log")
    ] = EVENTS_FILE,
    n: Annotated[int, typer.Option("--number", "-n", help="Number of events", min=1)] = 10,
    job_name: Annotated[Optional[str], typer.Option("--job", "-j", help="Only this job")] = None,
    event_type: Annotated[Optional[str], typer.Option("--type", "-t", help="Only this event type")] = None,
):
    """Show recent job events (enqueued, render_completed, render_failed, ...)."""
    if events_file is None:
        typer.secho("No event log configured (set IMAGINATOR_EVENTS_FILE or pass --events)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    events = get_recent_events(events_file, n, job_name=job_name, event_type=event_type)
    if not events:
        typer.echo("No events")
        return

    colors = {"render_failed": typer.colors.RED, "render_completed": typer.colors.GREEN}
    for event in events:
        when = format_timestamp(event.get("timestamp", ""), relative=True)
        line = f"{when:>10}  {event.get('event_type', '?'):<17} {event.get('job_name') or '-'}"
        if event.get("error"):
            line += f"  ({event['error']})"
        typer.secho(line, fg=colors.get(event.get("event_type")))


if __name__ == "__main__":
    app()
