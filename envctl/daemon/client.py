"""Lightweight client for daemon communication.

This module provides a thin client that connects to the daemon via Unix socket.
It's designed for minimal imports because shell hooks run it before every
command.

Usage:
    client = DaemonClient()
    script, generation = client.export("bash", since=0, pwd="/work/proj")
"""

import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from envctl.core.configs import default_socket_path
from envctl.daemon.protocol import deserialize_response, serialize_request
from envctl.daemon.scope import GLOBAL, Scope


class DaemonError(Exception):
    """The daemon answered with an error, or with something unexpected."""


class DaemonClient:
    """
    Lightweight client for daemon communication.

    Every call opens a new connection, sends one request and reads one
    response. Socket errors (daemon not running, timeouts) propagate as
    OSError; error responses raise DaemonError.
    """

    def __init__(
        self,
        socket_path: Optional[Path] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize client.

        Args:
            socket_path: Path to Unix socket
            timeout: Socket timeout in seconds
        """
        self.socket_path = Path(socket_path) if socket_path else default_socket_path()
        self.timeout = timeout

    def is_daemon_running(self) -> bool:
        """
        Check if daemon is running and answering.

        Returns True if the socket exists, accepts a connection and
        answers Ping with Pong.
        """
        if not self.socket_path.exists():
            return False

        try:
            self.ping(timeout=2.0)
            return True
        except (DaemonError, OSError):
            return False

    def ensure_daemon_running(self, auto_start: bool = True) -> bool:
        """
        Ensure daemon is running, optionally auto-starting it.

        Args:
            auto_start: If True, start daemon if not running

        Returns:
            True if daemon is running (or was started)
        """
        if self.is_daemon_running():
            return True

        if not auto_start:
            return False

        return self._start_daemon()

    def _start_daemon(self) -> bool:
        """
        Start the daemon in background.

        Returns True if daemon started successfully.
        """
        try:
            subprocess.Popen(
                [
                    sys.executable,
                    "-m",
                    "envctl.daemon.server",
                    "--socket-path",
                    str(self.socket_path),
                    "--daemonize",
                ],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError:
            return False

        # Wait for daemon to be ready (max 5 seconds)
        for _ in range(50):
            time.sleep(0.1)
            if self.is_daemon_running():
                return True

        return False

    def ping(self, timeout: Optional[float] = None) -> None:
        self._expect(self._send_request("Ping", timeout=timeout), "Pong")

    def status(self) -> Dict[str, int]:
        """
        Get daemon status.

        Returns:
            {"generation": int, "globals": int, "scopes": int}
        """
        response = self._expect(self._send_request("Status"), "Status")
        return {
            "generation": response["generation"],
            "globals": response["globals"],
            "scopes": response["scopes"],
        }

    def set(self, key: str, value: str, scope: Scope = GLOBAL) -> None:
        self._expect(self._send_request("Set", key=key, value=value, scope=scope), "Ok")

    def unset(self, key: str, scope: Scope = GLOBAL) -> None:
        self._expect(self._send_request("Unset", key=key, scope=scope), "Ok")

    def get(self, key: str, pwd: Optional[str] = None) -> Optional[str]:
        """Effective value of ``key`` at ``pwd`` (daemon's cwd when None)."""
        response = self._expect(self._send_request("Get", key=key, pwd=pwd), "Value")
        return response.get("value")

    def list(self, pwd: Optional[str] = None) -> Dict[str, str]:
        """Every variable visible at ``pwd`` (daemon's cwd when None)."""
        response = self._expect(self._send_request("List", pwd=pwd), "Map")
        return dict(response.get("entries") or {})

    def load(self, entries: Iterable[Tuple[str, str]], scope: Scope = GLOBAL) -> None:
        """Set each (key, value) pair in order, atomically for other clients."""
        payload = [[key, value] for key, value in entries]
        self._expect(self._send_request("Load", entries=payload, scope=scope), "Ok")

    def export(self, shell: str, since: int, pwd: str) -> Tuple[str, int]:
        """
        Ask for the script that brings a shell up to date.

        Args:
            shell: bash, zsh or fish
            since: Generation the shell last synchronized against
            pwd: The shell's working directory

        Returns:
            (script, new_generation)
        """
        response = self._expect(
            self._send_request("Export", shell=shell, since=since, pwd=pwd),
            "Export",
        )
        return response["script"], response["new_generation"]

    def shutdown(self) -> bool:
        """
        Request daemon shutdown.

        Returns True if shutdown was acknowledged.
        """
        try:
            self._expect(self._send_request("Shutdown", timeout=5.0), "Ok")
            return True
        except (DaemonError, OSError):
            return False

    def _expect(self, response: Dict[str, Any], response_type: str) -> Dict[str, Any]:
        kind = response.get("type")
        if kind == "Error":
            raise DaemonError(response.get("message") or "Unknown error")
        if kind != response_type:
            raise DaemonError(f"unexpected response: {kind}")
        return response

    def _send_request(
        self,
        request_type: str,
        timeout: Optional[float] = None,
        **fields: Any,
    ) -> Dict[str, Any]:
        """
        Send request to daemon and return response.

        Raises:
            ConnectionRefusedError: If daemon not running
            socket.timeout: If request times out
            OSError: Other socket errors
            DaemonError: If the response is empty or not valid JSON
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout or self.timeout)

        try:
            sock.connect(str(self.socket_path))
            sock.sendall(serialize_request(request_type, **fields))

            with sock.makefile("rb") as stream:
                line = stream.readline()

            if not line:
                raise DaemonError("empty response")
            try:
                return deserialize_response(line)
            except ValueError as e:
                raise DaemonError(f"parse response: {e}") from e

        finally:
            sock.close()


def is_daemon_disabled() -> bool:
    """True when ENVCTL_DISABLE=1 asks the shell hooks to stay quiet."""
    return os.environ.get("ENVCTL_DISABLE", "").lower() in ("1", "true", "yes")
