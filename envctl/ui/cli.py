"""Main CLI entry point - clean subcommand architecture."""

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

import typer

from envctl.core.configs import get_daemon_config
from envctl.daemon.client import DaemonClient, DaemonError, is_daemon_disabled
from envctl.daemon.export import GENERATION_VAR, ShellKind, is_valid_key
from envctl.daemon.scope import GLOBAL, Scope

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="envctl - share environment variables between shell sessions.",
)


# ============================================================================
# Shared Setup
# ============================================================================

def _client() -> DaemonClient:
    """Client for the configured socket. Exits on a broken configuration."""
    try:
        config = get_daemon_config()
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(1)
    return DaemonClient(socket_path=config.socket_path)


@contextmanager
def _daemon_call(client: DaemonClient) -> Iterator[None]:
    """Turn daemon and socket failures into a message and exit status 1."""
    try:
        yield
    except DaemonError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except OSError as e:
        typer.echo(f"Error: cannot reach daemon at {client.socket_path}: {e}", err=True)
        typer.echo("Start it with 'envctl daemon start'", err=True)
        raise typer.Exit(1)


def _scope(directory: Optional[Path]) -> Scope:
    if directory is None:
        return GLOBAL
    return Scope.directory(directory.expanduser().absolute())


def _pwd(pwd: Optional[Path]) -> str:
    """The directory to resolve against: --pwd, else our own working directory."""
    return str((pwd or Path.cwd()).expanduser().absolute())


def _shell(name: Optional[str]) -> ShellKind:
    from envctl.utils.detection import detect_shell

    try:
        return ShellKind.parse(name or detect_shell())
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)


def _check_key(key: str) -> None:
    if not is_valid_key(key):
        typer.echo(f"Error: invalid key: {key!r}", err=True)
        raise typer.Exit(1)


def parse_kv(text: str) -> Tuple[str, str]:
    """Split KEY=VAL at the first '='. Raises ValueError without one."""
    key, sep, value = text.partition("=")
    if not sep:
        raise ValueError("expected KEY=VAL")
    if not key:
        raise ValueError("empty key")
    return key, value


def _since_from_env() -> int:
    try:
        return max(int(os.environ.get(GENERATION_VAR, "0")), 0)
    except ValueError:
        return 0


# ============================================================================
# Commands
# ============================================================================

@app.command("set")
def set_var(
    kv: str = typer.Argument(..., metavar="KEY=VAL", help="Variable assignment"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Scope to this directory"),
) -> None:
    """
    Set a variable, globally or for a directory tree.

    Example: envctl set API_URL=http://localhost:8080 --dir ~/work/api
    """
    try:
        key, value = parse_kv(kv)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _check_key(key)

    client = _client()
    with _daemon_call(client):
        client.set(key, value, _scope(directory))


@app.command()
def unset(
    key: str = typer.Argument(..., help="Variable name"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Scope to this directory"),
) -> None:
    """Unset a variable, globally or for a directory."""
    _check_key(key)

    client = _client()
    with _daemon_call(client):
        client.unset(key, _scope(directory))


@app.command()
def get(
    key: str = typer.Argument(..., help="Variable name"),
    pwd: Optional[Path] = typer.Option(None, "--pwd", help="Resolve as seen from this directory (default: current)"),
) -> None:
    """Print the effective value of a variable (nothing if unset)."""
    client = _client()
    with _daemon_call(client):
        value = client.get(key, _pwd(pwd))
    if value is not None:
        typer.echo(value)


@app.command("list")
def list_vars(
    pwd: Optional[Path] = typer.Option(None, "--pwd", help="List as seen from this directory (default: current)"),
) -> None:
    """List every effective variable as KEY=VAL lines."""
    client = _client()
    with _daemon_call(client):
        entries = client.list(_pwd(pwd))
    for key in sorted(entries):
        typer.echo(f"{key}={entries[key]}")


@app.command()
def load(
    source: str = typer.Argument(..., metavar="INPUT", help=".env file path, or - for stdin"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Scope to this directory"),
    base64: bool = typer.Option(False, "--base64", help="Treat INPUT (or stdin) as base64-encoded content"),
) -> None:
    """
    Load variables from a .env file.

    Example: envctl load .env --dir .
    """
    from envctl.core.envfile import EnvFileError, parse_dotenv_base64, parse_dotenv_text

    try:
        if source == "-":
            text = sys.stdin.read()
        elif base64:
            text = source
        else:
            text = Path(source).read_text(encoding="utf-8")
        entries = parse_dotenv_base64(text) if base64 else parse_dotenv_text(text)
    except OSError as e:
        typer.echo(f"Error: open {source}: {e}", err=True)
        raise typer.Exit(1)
    except EnvFileError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    client = _client()
    with _daemon_call(client):
        client.load(entries, _scope(directory))


@app.command()
def export(
    shell: Optional[str] = typer.Argument(None, help="bash, zsh or fish (default: from $SHELL)"),
    since: int = typer.Option(0, "--since", min=0, help=f"Baseline generation (default: ${GENERATION_VAR})"),
    pwd: Optional[Path] = typer.Option(None, "--pwd", help="Working directory (default: current)"),
) -> None:
    """
    Print the script that brings this shell up to date.

    Example: eval "$(envctl export bash --since "$ENVCTL_GEN" --pwd "$PWD")"
    """
    if is_daemon_disabled():
        return

    kind = _shell(shell)
    if since == 0:
        since = _since_from_env()
    directory = _pwd(pwd)

    client = _client()
    with _daemon_call(client):
        script, _ = client.export(kind.value, since, directory)
    typer.echo(script, nl=False)


@app.command()
def hook(
    shell: Optional[str] = typer.Argument(None, help="bash, zsh or fish (default: from $SHELL)"),
) -> None:
    """
    Print the shell hook that keeps a session in sync.

    Example: eval "$(envctl hook bash)"
    """
    from envctl.ui.hooks import hook_for

    typer.echo(hook_for(_shell(shell)), nl=False)


@app.command()
def status() -> None:
    """Show daemon generation and variable counts."""
    from envctl.ui.daemon_commands import print_status

    client = _client()
    with _daemon_call(client):
        stats = client.status()
    print_status(stats, client.socket_path)


@app.command()
def ping() -> None:
    """Check that the daemon answers."""
    client = _client()
    with _daemon_call(client):
        client.ping()
    typer.echo("pong")


@app.command()
def daemon(
    action: str = typer.Argument(..., help="Action: start, stop, or status"),
    foreground: bool = typer.Option(False, "--foreground", help="Run in the foreground (start only)"),
) -> None:
    """
    Manage the background daemon.

    Actions:
        start  - Start the daemon (no-op if already running)
        stop   - Ask the daemon to shut down
        status - Show whether the daemon is running
    """
    from envctl.ui.daemon_commands import handle_daemon

    handle_daemon(action, foreground=foreground)


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
