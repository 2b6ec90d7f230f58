"""Async Unix socket server for the envctl daemon.

This module implements the long-running daemon process that:
1. Owns the single EnvState for the lifetime of the process
2. Accepts one request per connection over a Unix socket
3. Serializes every store operation behind one lock

Usage:
    envd [--socket-path PATH] [--idle-timeout SECONDS] [--daemonize]

    Or use the CLI:
    envctl daemon start
"""

import argparse
import asyncio
import logging
import os
import signal
import socket
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from envctl.core.configs import DaemonConfig, get_daemon_config
from envctl.daemon.export import ShellKind, export_since, is_valid_key
from envctl.daemon.protocol import (
    ProtocolError,
    deserialize_request,
    serialize_error,
    serialize_response,
)
from envctl.daemon.state import EnvState

logger = logging.getLogger(__name__)

# Upper bound on one request line. Loads of large .env files fit easily.
MAX_REQUEST_SIZE = 16 * 1024 * 1024


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _daemon_pwd() -> str:
    try:
        return os.getcwd()
    except OSError:
        return "."


class DaemonServer:
    """
    Async Unix socket server for the daemon.

    Each connection is handled by its own task. Reading the request and
    writing the response happen outside the lock; the store operation in
    between runs while holding it, so all operations observe one total
    order and a stalled client only delays itself.
    """

    def __init__(self, state: EnvState, config: DaemonConfig):
        """
        Initialize daemon server.

        Args:
            state: The store this daemon serves; owned by the server from now on
            config: Socket location and timeouts
        """
        self.state = state
        self.config = config
        self.socket_path = config.socket_path
        self.pid_path = config.pid_path

        self.server: Optional[asyncio.AbstractServer] = None
        self.last_request_time: float = time.time()
        self._lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        self._ready = asyncio.Event()

    async def start(self, install_signal_handlers: bool = True) -> None:
        """Start the daemon server and serve until shutdown."""
        logger.info("Starting envctl daemon...")

        self._prepare_socket_path()
        self.pid_path.write_text(str(os.getpid()))

        self.server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path),
            limit=MAX_REQUEST_SIZE,
        )

        # Set socket permissions (owner only)
        os.chmod(self.socket_path, 0o600)

        logger.info(f"Daemon listening on {self.socket_path}")

        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._signal_handler)

        idle_task = None
        if self.config.idle_timeout > 0:
            idle_task = asyncio.create_task(self._idle_watcher())

        self._ready.set()
        try:
            async with self.server:
                await self._shutdown_event.wait()
        finally:
            if idle_task is not None:
                idle_task.cancel()
            await self._cleanup()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _prepare_socket_path(self) -> None:
        """Create the socket directory and remove a stale socket."""
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.socket_path.exists():
            return

        probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        probe.settimeout(1.0)
        try:
            probe.connect(str(self.socket_path))
        except OSError:
            logger.info(f"Removing stale socket {self.socket_path}")
            self.socket_path.unlink(missing_ok=True)
            return
        finally:
            probe.close()
        raise RuntimeError(f"Another daemon is already listening on {self.socket_path}")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle a single client connection: one line in, one line out."""
        try:
            try:
                line = await asyncio.wait_for(
                    reader.readline(),
                    timeout=self.config.request_timeout,
                )
            except ValueError as e:
                # Line longer than MAX_REQUEST_SIZE
                logger.warning(f"Rejected oversize request: {e}")
                response = serialize_error(f"read error: {e}")
            else:
                self.last_request_time = time.time()
                response = await self.process(line)

            writer.write(response)
            await writer.drain()

        except asyncio.TimeoutError:
            logger.warning("Client connection timed out")
        except (ConnectionError, OSError) as e:
            logger.warning(f"Client connection failed: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def process(self, line: bytes) -> bytes:
        """Decode one request line and run it against the store."""
        try:
            request = deserialize_request(line)
        except ProtocolError as e:
            logger.warning(f"Rejected request: {e}")
            return serialize_error(f"read error: {e}")

        async with self._lock:
            try:
                return self.dispatch(request)
            except ValueError as e:
                logger.warning(f"Rejected {request.get('type')} request: {e}")
                return serialize_error(str(e))
            except Exception as e:
                logger.exception(f"Error handling {request.get('type')} request: {e}")
                return serialize_error(str(e))

    def dispatch(self, request: Dict[str, Any]) -> bytes:
        """
        Route a decoded request to its handler.

        Must be called with the lock held.
        """
        request_type = request["type"]
        if request_type == "Ping":
            return serialize_response("Pong")
        elif request_type == "Status":
            return self._handle_status()
        elif request_type == "Set":
            return self._handle_set(request)
        elif request_type == "Unset":
            return self._handle_unset(request)
        elif request_type == "Get":
            return self._handle_get(request)
        elif request_type == "List":
            return self._handle_list(request)
        elif request_type == "Load":
            return self._handle_load(request)
        elif request_type == "Export":
            return self._handle_export(request)
        elif request_type == "Shutdown":
            return self._handle_shutdown()
        return serialize_error(f"Unknown request type: {request_type}")

    def _handle_status(self) -> bytes:
        status = self.state.status()
        return serialize_response(
            "Status",
            generation=status.generation,
            globals=status.global_count,
            scopes=status.scope_count,
        )

    def _handle_set(self, request: Dict[str, Any]) -> bytes:
        key = request["key"]
        if not is_valid_key(key):
            return serialize_error(f"invalid key: {key}")
        if self.state.set(request["scope"], key, request["value"]):
            logger.debug(f"set {key} in {request['scope']} -> gen {self.state.generation}")
        return serialize_response("Ok")

    def _handle_unset(self, request: Dict[str, Any]) -> bytes:
        key = request["key"]
        if not is_valid_key(key):
            return serialize_error(f"invalid key: {key}")
        if self.state.unset(request["scope"], key):
            logger.debug(f"unset {key} in {request['scope']} -> gen {self.state.generation}")
        return serialize_response("Ok")

    def _handle_get(self, request: Dict[str, Any]) -> bytes:
        pwd = request["pwd"] or _daemon_pwd()
        return serialize_response("Value", value=self.state.get_effective(request["key"], pwd))

    def _handle_list(self, request: Dict[str, Any]) -> bytes:
        pwd = request["pwd"] or _daemon_pwd()
        return serialize_response("Map", entries=self.state.effective_for(pwd))

    def _handle_load(self, request: Dict[str, Any]) -> bytes:
        entries = request["entries"]
        invalid = [key for key, _ in entries if not is_valid_key(key)]
        if invalid:
            return serialize_error(f"invalid key: {invalid[0]}")
        before = self.state.generation
        self.state.load(request["scope"], entries)
        logger.debug(
            f"loaded {len(entries)} entries into {request['scope']} "
            f"({self.state.generation - before} changed)"
        )
        return serialize_response("Ok")

    def _handle_export(self, request: Dict[str, Any]) -> bytes:
        shell = ShellKind.parse(request["shell"])
        script, new_generation = export_since(
            self.state, shell, request["since"], request["pwd"]
        )
        return serialize_response("Export", script=script, new_generation=new_generation)

    def _handle_shutdown(self) -> bytes:
        logger.info("Shutdown requested via socket")
        self._shutdown_event.set()
        return serialize_response("Ok")

    async def _idle_watcher(self) -> None:
        """Watch for idle timeout and shutdown if exceeded."""
        interval = min(60.0, self.config.idle_timeout)
        while not self._shutdown_event.is_set():
            await asyncio.sleep(interval)

            idle_time = time.time() - self.last_request_time
            if idle_time > self.config.idle_timeout:
                logger.info(
                    f"Idle timeout reached ({idle_time:.0f}s > {self.config.idle_timeout:.0f}s), "
                    "shutting down"
                )
                self._shutdown_event.set()
                break

    def _signal_handler(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _cleanup(self) -> None:
        """Cleanup on shutdown."""
        logger.info("Cleaning up...")

        if self.server:
            self.server.close()
            await self.server.wait_closed()

        self.socket_path.unlink(missing_ok=True)
        self.pid_path.unlink(missing_ok=True)

        status = self.state.status()
        logger.info(
            f"Daemon stopped at generation {status.generation} "
            f"({len(self.state.history)} events, {status.scope_count} scopes)"
        )


def _daemonize(log_path: Path) -> None:
    """Double-fork into the background, logging to ``log_path``."""
    pid = os.fork()
    if pid > 0:
        os._exit(0)

    os.setsid()

    pid = os.fork()
    if pid > 0:
        os._exit(0)

    devnull = os.open(os.devnull, os.O_RDONLY)
    os.dup2(devnull, sys.stdin.fileno())
    os.close(devnull)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_file = open(log_path, "a")
    os.dup2(log_file.fileno(), sys.stdout.fileno())
    os.dup2(log_file.fileno(), sys.stderr.fileno())


def run_daemon(
    config: Optional[DaemonConfig] = None,
    daemonize: bool = False,
) -> None:
    """
    Run the daemon server until it is shut down.

    Args:
        config: Daemon settings (default: loaded from config file and environment)
        daemonize: Fork to background (Unix only)
    """
    config = config or get_daemon_config()

    if daemonize:
        _daemonize(config.log_path)

    configure_logging(config.log_level)

    server = DaemonServer(state=EnvState(), config=config)
    asyncio.run(server.start())


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="envctl daemon server")
    parser.add_argument(
        "--socket-path",
        help="Path to Unix socket",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Shutdown after this many seconds idle (0 = never)",
    )
    parser.add_argument(
        "--daemonize",
        action="store_true",
        help="Fork to background",
    )

    args = parser.parse_args(argv)

    try:
        config = get_daemon_config()
    except ValueError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.socket_path:
        socket_path = Path(args.socket_path).expanduser()
        config.socket_path = socket_path
        config.pid_path = socket_path.with_name("envd.pid")
        config.log_path = socket_path.with_name("envd.log")
    if args.idle_timeout is not None:
        config.idle_timeout = args.idle_timeout

    try:
        run_daemon(config=config, daemonize=args.daemonize)
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
