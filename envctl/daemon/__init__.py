"""Daemon architecture for envctl.

This module provides a long-running background process that holds
environment variables for many shell sessions and lets each one catch up
with a minimal diff before every command.

Architecture:
- EnvState: Generation-versioned store of global and directory-scoped variables
- export: Diff of the store since a client's baseline, rendered for its shell
- DaemonServer: Async Unix socket server serializing requests on one lock
- DaemonClient: Lightweight client that connects to daemon via socket
"""

from envctl.daemon.state import ChangeEvent, EnvState, StoreStatus
from envctl.daemon.scope import GLOBAL, Scope
from envctl.daemon.export import ShellKind, export_since
from envctl.daemon.client import DaemonClient, DaemonError
from envctl.daemon.protocol import (
    serialize_request,
    deserialize_request,
    serialize_response,
    deserialize_response,
)

__all__ = [
    "ChangeEvent",
    "EnvState",
    "StoreStatus",
    "GLOBAL",
    "Scope",
    "ShellKind",
    "export_since",
    "DaemonClient",
    "DaemonError",
    "serialize_request",
    "deserialize_request",
    "serialize_response",
    "deserialize_response",
]
