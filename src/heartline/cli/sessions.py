import sys
from typing import Optional, Protocol

import typer
from prompt_toolkit import PromptSession

from heartline.cli.formatter import OutputFormatter
from heartline.handshake.router import PeerNode, RouteOutcome
from heartline.liveness.registry import LivenessMonitor
from heartline.liveness.worker import WorkerAgent


class OperatorSession(Protocol):
    prompt: str

    def handle_command(self, line: str) -> bool:
        """
        Handle one operator line. Returns False to end the session.
        Raises TransportError once the session's queue consumer has failed.
        """
        ...


class RegistrySession:
    """`check` prints the liveness table, `exit` ends the session."""

    prompt = "monitor > "

    def __init__(self, monitor: LivenessMonitor):
        self.monitor = monitor
        self.registry = monitor.registry

    def handle_command(self, line: str) -> bool:
        self.monitor.raise_if_failed()
        command = line.strip()
        if command == "exit":
            return False
        if command == "check":
            OutputFormatter.print_records(self.registry.snapshot())
        return True


class WorkerSession:
    """Every line is sent to the registry as INFO, except `exit`."""

    def __init__(self, agent: WorkerAgent):
        self.agent = agent
        self.prompt = f"{agent.name} > "

    def handle_command(self, line: str) -> bool:
        self.agent.raise_if_failed()
        text = line.strip()
        if text == "exit":
            return False
        if text:
            self.agent.send_info(text)
        return True


class ConsoleHandshakeObserver:
    """Prints handshake notifications and chat lines for the local operator."""

    def on_connection_requested(self, counterpart: str) -> None:
        OutputFormatter.log(f"{counterpart} wants to connect with you!", severity="warning")

    def on_connection_accepted(self, counterpart: str) -> None:
        OutputFormatter.log(f"You have connected with {counterpart}!", severity="success")

    def on_content(self, sender: str, text: str) -> None:
        OutputFormatter.print_chat(sender, text)


class PeerSession:
    def __init__(self, node: PeerNode):
        self.node = node
        self.router = node.router
        self.prompt = f"{node.username} > "

    def handle_command(self, line: str) -> bool:
        self.node.raise_if_failed()
        if not line.strip():
            return True

        outcome = self.router.execute_command(line)
        if outcome == RouteOutcome.EXIT:
            return False
        if outcome == RouteOutcome.INVALID_COMMAND:
            OutputFormatter.log("Please, enter a valid command.", severity="warning")
        return True


def run_operator_loop(session: OperatorSession, prompt_session: Optional[PromptSession] = None) -> None:
    """
    Feed console lines to `session` until it asks to stop or input ends.
    Uses prompt_toolkit when attached to a terminal, plain typer prompts otherwise.
    """
    if prompt_session is None and sys.stdin.isatty():
        prompt_session = PromptSession()

    while True:
        try:
            if prompt_session is not None:
                line = prompt_session.prompt(session.prompt)
            else:
                line = typer.prompt(session.prompt.rstrip(), prompt_suffix=" ", default="", show_default=False)
        except (KeyboardInterrupt, EOFError, typer.Abort):
            OutputFormatter.log("Input closed, exiting.")
            return

        if not session.handle_command(line):
            return
