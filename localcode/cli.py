"""
LocalCode command-line interface.

Usage::

    localcode start
    localcode start --models llama3-8b-instruct,Qwen/qwen2.5-coder-1.5b-instruct:Q4_K_M
    localcode start --models phi3-mini --port 8081 --save
    localcode status
    localcode status --follow
    localcode status --probe
    localcode stop
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Optional

import click

from localcode.config import LocalcodeConfig, load_config, save_config
from localcode.errors import LocalcodeError
from localcode.models import ModelSelection
from localcode.runtime import (
    CONTAINER_NAME,
    TOOLKIT_INSTALL_URL,
    ContainerManager,
    ServerState,
)
from localcode.sources import DownloadProgress, DownloadStatus

_STAGE_LABELS = {
    "config": "Configuration error:",
    "runtime": "Docker is not available:",
    "download": "Failed to download models:",
    "launch": "Failed to start Docker container:",
    "stop": "Failed to stop server:",
    "status": "Failed to read server logs:",
}


def _fail(exc: LocalcodeError) -> None:
    label = _STAGE_LABELS.get(exc.stage, "Error:")
    click.echo(f"\n{click.style(label, fg='red', bold=True)} {exc}", err=True)
    sys.exit(1)


def _print_progress(record: DownloadProgress) -> None:
    if record.status is DownloadStatus.DOWNLOADING:
        click.echo(f"  Downloading {record.model}...")
    elif record.status is DownloadStatus.COMPLETE:
        note = "cached" if record.cached else "downloaded"
        click.echo(f"  {click.style('✓', fg='green')} {record.model} ({note})")
    elif record.status is DownloadStatus.SKIPPED:
        click.echo(
            f"  {record.model}: fetched by the server on first load"
        )


def _print_fallback(stderr: str) -> None:
    click.secho(
        "NVIDIA Container Toolkit not detected or GPU not available.", fg="yellow"
    )
    click.secho("Falling back to CPU mode (this will be slower).", dim=True)
    click.secho(
        "  To enable GPU acceleration, install the NVIDIA Container Toolkit:",
        dim=True,
    )
    click.secho(f"  {TOOLKIT_INSTALL_URL}", dim=True, underline=True)
    click.echo()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="localcode")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """LocalCode — run local LLMs for OpenCode behind one endpoint."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


@main.command()
@click.option(
    "--models",
    "-m",
    default=None,
    help="Comma-separated models to serve, with optional :QUANT "
    "(overrides the saved setup). Example: llama3-8b-instruct,phi3-mini",
)
@click.option(
    "--models-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for model weights (overrides the saved setup).",
)
@click.option("--port", "-p", default=None, type=int, help="Host port for the API.")
@click.option("--save", is_flag=True, help="Persist the options above to the saved setup.")
def start(
    models: Optional[str], models_dir: Optional[str], port: Optional[int], save: bool
) -> None:
    """Start the background LLM server using the saved configuration."""
    from localcode.server import start_server

    try:
        config = load_config()
    except LocalcodeError as exc:
        if not models:
            _fail(exc)
        config = LocalcodeConfig().apply_env()

    if models:
        config.models = [ModelSelection.parse(m) for m in models.split(",") if m.strip()]
    if models_dir:
        config.models_dir = os.path.expanduser(models_dir)
    if port is not None:
        config.port = port

    if not config.models:
        click.echo("Error: no models configured. Run `localcode init` first.", err=True)
        sys.exit(1)

    if save:
        path = save_config(config, config.path)
        click.echo(f"Saved setup to {path}")

    names = ", ".join(m.name for m in config.models)
    if not config.run_in_docker:
        click.echo(f"Starting {names} natively... (not implemented, use Docker)")
        return

    click.echo(
        f"Starting {click.style(names, fg='magenta', bold=True)} "
        f"with llama-swap in Docker on port {click.style(str(config.port), fg='yellow')}..."
    )

    manager = ContainerManager(image=config.image, cpu_image=config.cpu_image)
    try:
        result = asyncio.run(
            start_server(
                config.models,
                config.models_dir,
                config.port,
                manager=manager,
                on_progress=_print_progress,
                on_fallback=_print_fallback,
            )
        )
    except LocalcodeError as exc:
        _fail(exc)
        return

    mode = "GPU" if result.gpu else "CPU"
    click.echo(f"Container {CONTAINER_NAME} started ({mode}, {result.image}).")
    click.secho(
        "The model server is starting in the background.\n"
        "  Run `localcode status` to view its loading progress!",
        bold=True,
    )
    click.secho(
        "  Run `localcode stop` later when you want to shut down the server.",
        dim=True,
    )


async def _render_status(follow: bool, port: int) -> None:
    from localcode.status import TIMINGS_MARKER, Phase, watch

    click.echo("Waiting for container startup logs...")
    ready = False
    async for event in watch(CONTAINER_NAME, stop_at_ready=not follow):
        if ready:
            if TIMINGS_MARKER in event.text:
                click.secho(event.text, dim=True)
            continue
        if event.is_ready:
            ready = True
            click.echo(
                click.style("✅ llama.cpp server is actively running on: ", fg="green", bold=True)
                + click.style(f"http://localhost:{port}", fg="cyan")
            )
        elif event.phase is Phase.META_STAT:
            click.echo(f"📊 {click.style(event.key or '', dim=True)}: "
                       f"{click.style(event.value or '', fg='yellow')}")
        else:
            click.echo(event.message)


@main.command()
@click.option("--follow", "-f", is_flag=True, help="Stay attached after the server is ready.")
@click.option("--probe", is_flag=True, help="Report server state without attaching to logs.")
@click.option("--port", "-p", default=None, type=int, help="Host port to report/probe.")
def status(follow: bool, probe: bool, port: Optional[int]) -> None:
    """Show the real-time loading status of the background model."""
    if port is None:
        try:
            port = load_config().port
        except LocalcodeError:
            port = 8080

    if probe:
        from localcode.status import probe_server

        try:
            state = asyncio.run(probe_server(port=port))
        except LocalcodeError as exc:
            _fail(exc)
            return
        colour = {
            ServerState.READY: "green",
            ServerState.STARTING: "yellow",
            ServerState.FAILED: "red",
        }.get(state.state, None)
        click.echo(f"Server: {click.style(state.state.value, fg=colour)}")
        if state.gpu is not None:
            click.echo(f"Mode: {'GPU' if state.gpu else 'CPU'}")
        if state.reason:
            click.echo(f"Reason: {state.reason}")
        return

    try:
        asyncio.run(_render_status(follow, port))
    except KeyboardInterrupt:
        click.echo("\nDetached. The server keeps running.")
    except LocalcodeError as exc:
        _fail(exc)


@main.command()
def stop() -> None:
    """Stop the background LLM server."""
    from localcode.server import stop_server

    click.secho("Stopping and removing local LLM Docker container...", fg="yellow")
    try:
        removed = asyncio.run(stop_server())
    except LocalcodeError as exc:
        _fail(exc)
        return

    if removed:
        click.secho("✓ Server stopped successfully.", fg="green", bold=True)
    else:
        click.secho("No running server found.", dim=True)
