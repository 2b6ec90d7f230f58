"""JSON-based protocol for daemon IPC.

One request and one response per connection, each a single JSON object
terminated by a newline. Objects are tagged by their "type" field.

Request format:
    {"type": "Ping"}
    {"type": "Status"}
    {"type": "Set", "key": str, "value": str, "scope": SCOPE}
    {"type": "Unset", "key": str, "scope": SCOPE}
    {"type": "Get", "key": str, "pwd": str | null}
    {"type": "List", "pwd": str | null}
    {"type": "Load", "entries": [[str, str], ...], "scope": SCOPE}
    {"type": "Export", "shell": "bash" | "zsh" | "fish", "since": int, "pwd": str}
    {"type": "Shutdown"}

    SCOPE = {"type": "Global"} | {"type": "Dir", "path": str}

Response format:
    {"type": "Pong"}
    {"type": "Status", "generation": int, "globals": int, "scopes": int}
    {"type": "Ok"}
    {"type": "Value", "value": str | null}
    {"type": "Map", "entries": {str: str}}
    {"type": "Export", "script": str, "new_generation": int}
    {"type": "Error", "message": str}
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from envctl.daemon.scope import Scope

REQUEST_TYPES = (
    "Ping",
    "Status",
    "Set",
    "Unset",
    "Get",
    "List",
    "Load",
    "Export",
    "Shutdown",
)


class ProtocolError(ValueError):
    """Raised when a message is not a well-formed request or response."""


def serialize_request(request_type: str, **fields: Any) -> bytes:
    """
    Serialize request to bytes for socket transmission.

    Args:
        request_type: One of REQUEST_TYPES
        **fields: Request payload (scope values may be Scope objects)

    Returns:
        UTF-8 encoded JSON line
    """
    message: Dict[str, Any] = {"type": request_type}
    for name, value in fields.items():
        message[name] = scope_to_wire(value) if isinstance(value, Scope) else value
    return _encode(message)


def deserialize_request(data: bytes) -> Dict[str, Any]:
    """
    Deserialize and validate a request line.

    Scope fields are converted to Scope objects and entries to a list of
    (key, value) tuples, so handlers can use them directly.

    Raises:
        ProtocolError: If data is empty, not JSON, or not a valid request
    """
    request = _decode(data, "request")
    request_type = request.get("type")
    if request_type not in REQUEST_TYPES:
        raise ProtocolError(f"Unknown request type: {request_type!r}")

    if request_type in ("Set", "Unset", "Get"):
        _require_str(request, "key")
    if request_type == "Set":
        _require_str(request, "value")
    if request_type in ("Set", "Unset", "Load"):
        request["scope"] = scope_from_wire(request.get("scope"))
    if request_type in ("Get", "List"):
        pwd = request.get("pwd")
        if pwd is not None and not isinstance(pwd, str):
            raise ProtocolError("Field 'pwd' must be a string or null")
        request["pwd"] = pwd
    if request_type == "Load":
        request["entries"] = _entries_from_wire(request.get("entries"))
    if request_type == "Export":
        _require_str(request, "shell")
        _require_str(request, "pwd")
        since = request.get("since")
        if not isinstance(since, int) or isinstance(since, bool) or since < 0:
            raise ProtocolError("Field 'since' must be a non-negative integer")
    return request


def serialize_response(response_type: str, **fields: Any) -> bytes:
    """
    Serialize response to bytes for socket transmission.

    Args:
        response_type: Pong, Status, Ok, Value, Map, Export or Error
        **fields: Response payload

    Returns:
        UTF-8 encoded JSON line
    """
    message: Dict[str, Any] = {"type": response_type}
    message.update(fields)
    return _encode(message)


def serialize_error(message: str) -> bytes:
    return serialize_response("Error", message=message)


def deserialize_response(data: bytes) -> Dict[str, Any]:
    """
    Deserialize response from bytes.

    Raises:
        ProtocolError: If data is empty, not JSON, or has no "type"
    """
    response = _decode(data, "response")
    if not isinstance(response.get("type"), str):
        raise ProtocolError("Response has no 'type'")
    return response


def scope_to_wire(scope: Scope) -> Dict[str, str]:
    if scope.is_global:
        return {"type": "Global"}
    return {"type": "Dir", "path": str(scope.path)}


def scope_from_wire(data: Any) -> Scope:
    """Build a Scope from its wire form, canonicalizing directory paths."""
    if not isinstance(data, dict):
        raise ProtocolError("Field 'scope' must be an object")
    kind = data.get("type")
    if kind == "Global":
        return Scope.global_scope()
    if kind == "Dir":
        path = data.get("path")
        if not isinstance(path, str) or not path:
            raise ProtocolError("Dir scope needs a non-empty 'path'")
        return Scope.directory(path)
    raise ProtocolError(f"Unknown scope type: {kind!r}")


def _entries_from_wire(data: Any) -> List[Tuple[str, str]]:
    if not isinstance(data, list):
        raise ProtocolError("Field 'entries' must be a list of [key, value] pairs")
    entries = []
    for item in data:
        if (
            not isinstance(item, (list, tuple))
            or len(item) != 2
            or not all(isinstance(part, str) for part in item)
        ):
            raise ProtocolError(f"Invalid entry: {item!r}")
        entries.append((item[0], item[1]))
    return entries


def _require_str(message: Dict[str, Any], name: str) -> None:
    if not isinstance(message.get(name), str):
        raise ProtocolError(f"Missing or invalid field '{name}'")


def _encode(message: Dict[str, Any]) -> bytes:
    return json.dumps(message).encode("utf-8") + b"\n"


def _decode(data: bytes, what: str) -> Dict[str, Any]:
    try:
        text = data.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Invalid UTF-8: {e}") from e
    if not text:
        raise ProtocolError(f"empty {what}")
    try:
        message: Optional[Any] = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(message, dict):
        raise ProtocolError(f"{what.capitalize()} must be a JSON object")
    return message
