"""
.env parsing for `envctl load`.

Parsing is delegated to python-dotenv's statement parser so quoting and
comments follow the usual .env conventions. On top of it we keep the file
order (a later duplicate wins when loaded), refuse keys that are not valid
shell variable names, and do not expand ${VAR} references.
"""

import base64
import binascii
import io
from typing import List, TextIO, Tuple

from dotenv.parser import parse_stream

from envctl.daemon.export import is_valid_key


class EnvFileError(ValueError):
    """Raised when .env content cannot be loaded."""


def parse_dotenv(stream: TextIO) -> List[Tuple[str, str]]:
    """
    Parse .env content into ordered (key, value) pairs.

    Blank lines and comments are skipped, an ``export`` prefix is accepted.

    Raises:
        EnvFileError: On a line that is not KEY=VALUE or has an invalid key
    """
    entries: List[Tuple[str, str]] = []
    for binding in parse_stream(stream):
        line = binding.original.line
        if binding.error:
            raise EnvFileError(f"invalid line {line}: {binding.original.string.strip()}")
        if binding.key is None:
            continue
        if not is_valid_key(binding.key):
            raise EnvFileError(f"invalid key at line {line}: {binding.key}")
        if binding.value is None:
            raise EnvFileError(f"invalid line {line}: {binding.original.string.strip()}")
        entries.append((binding.key, binding.value))
    return entries


def parse_dotenv_text(text: str) -> List[Tuple[str, str]]:
    return parse_dotenv(io.StringIO(text))


def parse_dotenv_base64(payload: str) -> List[Tuple[str, str]]:
    """Decode base64 (whitespace ignored) and parse the result as .env content."""
    compact = "".join(payload.split())
    try:
        decoded = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EnvFileError(f"invalid base64 input: {e}") from e
    try:
        text = decoded.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EnvFileError(f"base64 input is not UTF-8: {e}") from e
    return parse_dotenv_text(text)
