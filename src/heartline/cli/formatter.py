from datetime import datetime
from typing import List

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from heartline.core.models import ServiceRecord, ServiceState

# Create a stderr console for logging
error_console = Console(stderr=True)

_STATE_STYLES = {
    ServiceState.CONNECTED: "green",
    ServiceState.TIMEOUT: "red",
    ServiceState.DISCONNECTED: "yellow",
}


def timestamp() -> str:
    """Current local time formatted as 'YYYY-MM-DD HH:MM:SS.mmm'."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


class OutputFormatter:
    """
    Handles output formatting for the registry, worker and peer programs.
    System logs go to stderr, operator-facing data goes to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print a timestamped system message to stderr with color coding.
        """
        style = "white"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]\\[{timestamp()}]: {escape(message)}[/{style}]", highlight=False)

    @staticmethod
    def print_records(records: List[ServiceRecord]) -> None:
        """
        Prints the liveness table shown by the registry `check` command.
        """
        if not records:
            OutputFormatter.log("There are no monitored services yet.")
            return

        table = Table(title="Monitored Services", header_style="bold")
        table.add_column("Service", style="bold")
        table.add_column("State")
        table.add_column("Heartbeat Interval (ms)", justify="right")

        for record in records:
            color = _STATE_STYLES.get(record.state, "white")
            table.add_row(
                escape(record.name),
                f"[{color}]{record.state.value}[/{color}]",
                str(record.heartbeat_interval_ms),
            )

        Console().print(table)

    @staticmethod
    def print_chat(sender: str, text: str) -> None:
        """Print a chat line received from an accepted counterparty."""
        typer.echo(f"[{sender}]: {text}")
