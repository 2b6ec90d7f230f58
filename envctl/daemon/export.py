"""Incremental export: what a shell must change to catch up.

A shell remembers the generation it last synchronized against (ENVCTL_GEN)
and its working directory. From those two values the daemon computes the
keys that may have changed for that shell and renders a script that sets or
unsets each of them, always finishing with a fresh ENVCTL_GEN.

Values are never reconstructed from the history. The history only says
*which* keys to look at; the value reported is the one effective right now.
"""

import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from envctl.daemon.scope import PathLike, canonicalize, is_ancestor
from envctl.daemon.state import EnvState

GENERATION_VAR = "ENVCTL_GEN"

_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# (key, value) where value None means "unset"
Action = Tuple[str, Optional[str]]


class ShellKind(str, Enum):
    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"

    @classmethod
    def parse(cls, name: str) -> "ShellKind":
        try:
            return cls(name)
        except ValueError:
            supported = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Unsupported shell: {name!r} (expected one of: {supported})"
            ) from None


def is_valid_key(key: str) -> bool:
    """Check a variable name against [A-Za-z_][A-Za-z0-9_]*."""
    return isinstance(key, str) and _KEY_RE.fullmatch(key) is not None


def quote_posix(value: str) -> str:
    """Single-quote for bash/zsh; embedded quotes become '\\''."""
    return "'" + value.replace("'", "'\\''") + "'"


def quote_fish(value: str) -> str:
    """Single-quote for fish, where \\ and ' are escapable inside quotes."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def affected_keys(state: EnvState, since: int, pwd: PathLike) -> Set[str]:
    """
    Keys changed after generation ``since`` that can be visible at ``pwd``.

    Global changes always count. A directory change counts only when that
    directory is ``pwd`` or one of its ancestors.
    """
    target = canonicalize(pwd)
    keys: Set[str] = set()
    for event in state.history:
        if event.generation <= since:
            continue
        if event.scope.is_global or is_ancestor(event.scope.path, target):
            keys.add(event.key)
    return keys


def compute_actions(state: EnvState, since: int, pwd: PathLike) -> Tuple[List[Action], int]:
    """
    Sorted (key, current value) actions for a shell at ``pwd``.

    Must run under the same lock as the store's writers so the returned
    generation matches the actions. A ``since`` ahead of the store comes
    from a shell that synchronized with an earlier daemon process and is
    answered as a bootstrap.

    Returns:
        (actions sorted by key, new baseline generation)
    """
    new_generation = state.generation
    if since > new_generation:
        since = 0
    target = canonicalize(pwd)
    actions = [
        (key, state.get_effective(key, target))
        for key in sorted(affected_keys(state, since, target))
    ]
    return actions, new_generation


def render_script(shell: ShellKind, actions: Sequence[Action], new_generation: int) -> str:
    """
    Render actions as a script for ``shell``.

    Keys that are not valid variable names are skipped. The generation
    stamp is always the last line, even with no actions.
    """
    lines = []
    if shell is ShellKind.FISH:
        for key, value in actions:
            if not is_valid_key(key):
                continue
            if value is None:
                lines.append(f"set -e {key}")
            else:
                lines.append(f"set -gx {key} {quote_fish(value)}")
        lines.append(f"set -gx {GENERATION_VAR} {new_generation}")
    else:
        for key, value in actions:
            if not is_valid_key(key):
                continue
            if value is None:
                lines.append(f"unset -v {key}")
            else:
                lines.append(f"export {key}={quote_posix(value)}")
        lines.append(f"export {GENERATION_VAR}={new_generation}")
    return "\n".join(lines) + "\n"


def export_since(
    state: EnvState,
    shell: ShellKind,
    since: int,
    pwd: PathLike,
) -> Tuple[str, int]:
    """
    Script bringing a shell at ``pwd`` from generation ``since`` to now.

    ``since=0`` is the bootstrap case: every variable visible at ``pwd`` is
    exported. Calling again with the returned generation, and no change in
    between, yields only the generation stamp.

    Returns:
        (script, new_generation)
    """
    actions, new_generation = compute_actions(state, since, Path(pwd))
    return render_script(shell, actions, new_generation), new_generation
