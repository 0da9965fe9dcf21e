import typer
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from heartline.cli.formatter import OutputFormatter
from heartline.cli.sessions import (
    ConsoleHandshakeObserver,
    PeerSession,
    RegistrySession,
    WorkerSession,
    run_operator_loop,
)
from heartline.config.loader import load_heartline_config
from heartline.core.models import HeartlineConfig, RegistrySettings
from heartline.handshake.router import PeerNode
from heartline.liveness.registry import LivenessMonitor
from heartline.liveness.worker import WorkerAgent
from heartline.transport import open_transport
from heartline.transport.base import Transport
from heartline.utils.diagnostics import TransportError, WorkerStateError

app = typer.Typer(name="heartline", help="Heartline CLI Interface", rich_markup_mode=None)

DEFAULT_CONFIG_PATH = Path("heartline.yaml")


def _load_config(config_path: Path, url: Optional[str]) -> HeartlineConfig:
    try:
        config = load_heartline_config(config_path)
    except (ValueError, ValidationError) as e:
        OutputFormatter.log(f"Error: Invalid configuration in {config_path}: {e}", severity="error")
        raise typer.Exit(code=1)

    # CLI override takes precedence over config/default
    if url:
        config.transport = config.transport.model_copy(update={"url": url})
    return config


def _connect(config: HeartlineConfig) -> Transport:
    try:
        return open_transport(config.transport)
    except TransportError as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=1)


@app.command()
def registry(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to heartline.yaml."),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Transport URL, e.g. redis://localhost:6379/0."),
    queue: Optional[str] = typer.Option(None, "--queue", help="Name of the registry queue."),
    sweep_interval_ms: Optional[int] = typer.Option(None, "--sweep-interval-ms", min=1, help="Delay between sweeps."),
):
    """
    Run the liveness registry. Type 'check' to list services, 'exit' to quit.
    """
    config = _load_config(config_path, url)
    updates = {}
    if queue:
        updates["queue_name"] = queue
    if sweep_interval_ms is not None:
        updates["sweep_interval_ms"] = sweep_interval_ms
    try:
        settings = RegistrySettings.model_validate({**config.registry.model_dump(), **updates})
    except ValidationError as e:
        OutputFormatter.log(f"Error: Invalid registry options: {e}", severity="error")
        raise typer.Exit(code=1)

    transport = _connect(config)
    try:
        with LivenessMonitor(transport, settings=settings) as monitor:
            run_operator_loop(RegistrySession(monitor))
            monitor.raise_if_failed()
    except TransportError as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=1)


@app.command()
def worker(
    name: str = typer.Argument(..., help="Service name; also the name of its own queue."),
    heartbeat_interval_ms: Optional[int] = typer.Argument(None, min=1, help="Heartbeat interval in milliseconds."),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to heartline.yaml."),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Transport URL, e.g. redis://localhost:6379/0."),
):
    """
    Run a monitored worker. Every line typed is sent to the registry; 'exit' disconnects.
    """
    config = _load_config(config_path, url)
    interval = heartbeat_interval_ms or config.worker.default_heartbeat_interval_ms

    transport = _connect(config)
    try:
        with WorkerAgent(name, interval, transport, registry_queue=config.registry.queue_name) as agent:
            agent.connect()
            agent.start_heartbeats()
            run_operator_loop(WorkerSession(agent))
            agent.disconnect()
    except (TransportError, WorkerStateError) as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=1)


@app.command()
def peer(
    username: Optional[str] = typer.Argument(None, help="Your username; also the name of your queue."),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to heartline.yaml."),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Transport URL, e.g. redis://localhost:6379/0."),
):
    """
    Run a chat peer: !hello <name>, !ack <name>, !sendto <name> <text>, !exit.
    """
    config = _load_config(config_path, url)
    if not username:
        username = typer.prompt("Your username").strip()
    if not username or len(username.split()) != 1:
        OutputFormatter.log("Error: Username must be a single non-empty word.", severity="error")
        raise typer.Exit(code=2)

    transport = _connect(config)
    try:
        with PeerNode(username, transport, observer=ConsoleHandshakeObserver()) as node:
            run_operator_loop(PeerSession(node))
            node.raise_if_failed()
    except TransportError as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
