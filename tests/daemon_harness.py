"""
Run a real DaemonServer on a temporary socket in a background thread.
"""

import asyncio
import shutil
import tempfile
import threading
from pathlib import Path

from envctl.core.configs import DaemonConfig
from envctl.daemon.server import DaemonServer
from envctl.daemon.state import EnvState


class RunningDaemon:
    """Context manager: start a daemon on enter, stop it on exit."""

    def __init__(self, request_timeout: float = 5.0, idle_timeout: float = 0.0):
        self.temp_dir = Path(tempfile.mkdtemp(prefix="envctl-"))
        self.socket_path = self.temp_dir / "cmux-envd" / "envd.sock"
        self.config = DaemonConfig(
            socket_path=self.socket_path,
            pid_path=self.socket_path.with_name("envd.pid"),
            log_path=self.socket_path.with_name("envd.log"),
            idle_timeout=idle_timeout,
            request_timeout=request_timeout,
        )
        self.state = EnvState()
        self.server = DaemonServer(self.state, self.config)
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.server.start(install_signal_handlers=False))

    def __enter__(self) -> "RunningDaemon":
        self.thread.start()
        ready = asyncio.run_coroutine_threadsafe(self.server.wait_ready(), self.loop)
        ready.result(timeout=5)
        return self

    def __exit__(self, *exc_info):
        if self.thread.is_alive():
            self.loop.call_soon_threadsafe(self.server.request_shutdown)
            self.thread.join(timeout=5)
        self.loop.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)
