"""Configuration management for envctl.

Loads optional user settings from ~/.config/envctl/config.cfg
Provides DaemonConfig (socket location, timeouts, log level)

Environment variables take precedence over the config file:
    ENVCTL_SOCKET          - path of the daemon socket
    ENVCTL_IDLE_TIMEOUT_S  - stop the daemon after this many idle seconds
    ENVCTL_LOG_LEVEL       - daemon log level
"""

import configparser
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Dict, Optional

# Default location for user configuration.
CONFIG_PATH = Path.home() / ".config" / "envctl" / "config.cfg"

SOCKET_DIR_NAME = "cmux-envd"
SOCKET_NAME = "envd.sock"


@dataclass
class DaemonConfig:
    socket_path: Path
    pid_path: Path
    log_path: Path
    idle_timeout: float = 0.0
    request_timeout: float = 30.0
    log_level: str = "INFO"


def runtime_dir() -> Path:
    """$XDG_RUNTIME_DIR when set and non-empty, else /tmp."""
    value = os.environ.get("XDG_RUNTIME_DIR", "")
    if value:
        return Path(value)
    return Path("/tmp")


def default_socket_path() -> Path:
    return runtime_dir() / SOCKET_DIR_NAME / SOCKET_NAME


def load_raw_config(path: Path = CONFIG_PATH) -> Dict[str, str]:
    """
    Load configuration values from the standard config path.
    Values are returned with lowercase keys for convenience.
    """
    cfg = configparser.ConfigParser()
    data: Dict[str, str] = {}

    if path.exists():
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})

    return data


def _get_float(raw: Dict[str, str], key: str, env: Optional[str], default: float) -> float:
    value = os.environ.get(env) if env else None
    if value is None or str(value).strip() == "":
        value = raw.get(key, "")
    if value is None or str(value).strip() == "":
        return default
    try:
        number = float(value)
    except ValueError:
        raise ValueError(f"Invalid number for '{key}': {value!r}") from None
    if number < 0:
        raise ValueError(f"'{key}' must not be negative (got {number})")
    return number


def get_daemon_config(raw: Optional[Dict[str, str]] = None) -> DaemonConfig:
    """
    Build a DaemonConfig from raw configuration values and the environment.
    Raises ValueError if a numeric setting cannot be parsed.
    """
    raw = raw if raw is not None else load_raw_config()

    socket_value = os.environ.get("ENVCTL_SOCKET") or raw.get("socket_path", "").strip()
    socket_path = Path(socket_value).expanduser() if socket_value else default_socket_path()

    log_level = (
        os.environ.get("ENVCTL_LOG_LEVEL") or raw.get("log_level", "") or "INFO"
    ).strip().upper()

    return DaemonConfig(
        socket_path=socket_path,
        pid_path=socket_path.with_name("envd.pid"),
        log_path=socket_path.with_name("envd.log"),
        idle_timeout=_get_float(raw, "idle_timeout", "ENVCTL_IDLE_TIMEOUT_S", 0.0),
        request_timeout=_get_float(raw, "request_timeout", None, 30.0),
        log_level=log_level,
    )
