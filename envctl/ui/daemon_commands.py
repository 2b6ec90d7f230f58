"""
Daemon Management Commands

CLI handlers for starting, stopping and inspecting the daemon.
This module is lazy-loaded only when these commands are used.
Heavy dependencies (Rich) are isolated here to keep `envctl export` fast.
"""

from pathlib import Path
from typing import Dict

from rich.console import Console
from rich.table import Table

from envctl.core.configs import get_daemon_config
from envctl.daemon.client import DaemonClient

console = Console()


def handle_daemon(action: str, foreground: bool = False) -> None:
    """
    Route to appropriate daemon action.

    Args:
        action: One of 'start', 'stop', 'status'
        foreground: Run the server in this process instead of forking
    """
    actions = {
        "start": lambda: start_daemon(foreground),
        "stop": stop_daemon,
        "status": daemon_status,
    }

    if action not in actions:
        console.print(f"[red]Unknown action: {action}[/red]")
        console.print("Available actions: start, stop, status")
        raise SystemExit(1)

    actions[action]()


def _client() -> DaemonClient:
    try:
        config = get_daemon_config()
    except ValueError as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        raise SystemExit(1)
    return DaemonClient(socket_path=config.socket_path)


def start_daemon(foreground: bool = False) -> None:
    client = _client()
    if client.is_daemon_running():
        console.print(f"[yellow]Daemon already running on {client.socket_path}[/yellow]")
        return

    if foreground:
        from envctl.daemon.server import run_daemon

        config = get_daemon_config()
        try:
            run_daemon(config=config)
        except RuntimeError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        return

    if not client.ensure_daemon_running(auto_start=True):
        console.print(f"[red]Daemon did not come up on {client.socket_path}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Daemon started on {client.socket_path}[/green]")


def stop_daemon() -> None:
    client = _client()
    if not client.is_daemon_running():
        console.print("[yellow]Daemon is not running[/yellow]")
        return

    if client.shutdown():
        console.print("[green]Daemon stopped[/green]")
    else:
        console.print("[red]Daemon did not acknowledge shutdown[/red]")
        raise SystemExit(1)


def daemon_status() -> None:
    client = _client()
    if not client.is_daemon_running():
        console.print(f"[yellow]Daemon is not running[/yellow] (socket: {client.socket_path})")
        raise SystemExit(1)
    print_status(client.status(), client.socket_path)


def print_status(stats: Dict[str, int], socket_path: Path) -> None:
    """Render daemon stats as a table."""
    table = Table(title="envctl daemon", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("socket", str(socket_path))
    table.add_row("generation", str(stats["generation"]))
    table.add_row("globals", str(stats["globals"]))
    table.add_row("scopes", str(stats["scopes"]))
    console.print(table)
