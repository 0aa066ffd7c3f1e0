"""Render bootstrap events on the console.

The bootstrapper never prints; it hands events to this reporter, which
is the only place that knows how they look on a terminal.
"""

from __future__ import annotations

from chclient.cli.console import console
from chclient.core.bootstrap import (
    Advisory,
    AttemptFailed,
    BootstrapEvent,
    BootstrapWarning,
    Connected,
    Connecting,
)


class ConsoleBootstrapReporter:
    """Callable reporter writing human-readable progress to stderr.

    Parameters
    ----------
    interactive:
        Connection chatter (``Connecting to ...``) is only shown in
        interactive sessions; failures and warnings always are.
    """

    def __init__(self, *, interactive: bool) -> None:
        self._interactive = interactive

    def __call__(self, event: BootstrapEvent) -> None:
        if isinstance(event, Connecting):
            if self._interactive:
                database = f"database {event.database} at " if event.database else ""
                user = f" as user {event.user}" if event.user else ""
                console.print(f"Connecting to {database}{event.host}:{event.port}{user}.")
        elif isinstance(event, AttemptFailed):
            console.print(f"[bold red]Connection failed:[/bold red] {event.error}")
            if event.next_host:
                console.print("[yellow]Trying the next host.[/yellow]")
        elif isinstance(event, Connected):
            if self._interactive:
                console.print(
                    f"Connected to {event.server_name} server version {event.server_version}.\n"
                )
        elif isinstance(event, Advisory):
            if self._interactive:
                console.print(f"[yellow]{event.message}[/yellow]\n")
        elif isinstance(event, BootstrapWarning):
            console.print(f"[yellow]Warning:[/yellow] {event.message}")
