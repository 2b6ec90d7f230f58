"""In-memory variable store for the daemon.

This class holds every variable the daemon knows about, grouped by scope,
together with a generation counter and the change history that lets
clients catch up incrementally.

Key structures:
- globals: variables visible from every directory
- scoped: per-directory variables, keyed by canonical path
- history: one ChangeEvent per effective set/unset, in generation order

The history is never compacted. It grows by one event per real change for
as long as the daemon runs; trimming it would turn stale baselines into
wrong diffs instead of full ones.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from envctl.daemon.scope import PathLike, Scope, best_scope_for


@dataclass(frozen=True)
class ChangeEvent:
    """One key changing in one scope at one generation."""
    generation: int
    key: str
    scope: Scope


@dataclass(frozen=True)
class StoreStatus:
    """Snapshot returned by the Status request."""
    generation: int
    global_count: int
    scope_count: int


class EnvState:
    """
    Generation-versioned store of global and directory-scoped variables.

    ``set`` and ``unset`` are the only writers. Each call that actually
    changes a value bumps ``generation`` by exactly one and appends a
    ChangeEvent carrying the new generation.

    Thread safety: This class is NOT thread-safe. The daemon serializes
    every call through the server's lock.
    """

    def __init__(self) -> None:
        self.generation: int = 0
        self.globals: Dict[str, str] = {}
        self.scoped: Dict[Path, Dict[str, str]] = {}
        self.history: List[ChangeEvent] = []

    def set(self, scope: Scope, key: str, value: str) -> bool:
        """
        Set ``key`` to ``value`` in ``scope``.

        Writing the value a key already holds is a no-op: no event, no
        generation bump. A directory scope is created on its first set.

        Returns:
            True if the stored value changed
        """
        if scope.is_global:
            variables = self.globals
        else:
            scope = Scope.directory(scope.path)
            variables = self.scoped.setdefault(scope.path, {})

        if key in variables and variables[key] == value:
            return False
        variables[key] = value
        self._bump(key, scope)
        return True

    def unset(self, scope: Scope, key: str) -> bool:
        """
        Remove ``key`` from ``scope``.

        Unsetting an absent key, or a key in a directory that never had a
        scope, does nothing. Emptied directory scopes are kept.

        Returns:
            True if the key existed
        """
        if scope.is_global:
            variables = self.globals
        else:
            scope = Scope.directory(scope.path)
            variables = self.scoped.get(scope.path)
            if variables is None:
                return False

        if key not in variables:
            return False
        del variables[key]
        self._bump(key, scope)
        return True

    def load(self, scope: Scope, entries: Iterable[Tuple[str, str]]) -> None:
        """Apply ``set`` for each (key, value) pair, in order."""
        for key, value in entries:
            self.set(scope, key, value)

    def _bump(self, key: str, scope: Scope) -> None:
        self.generation += 1
        self.history.append(ChangeEvent(generation=self.generation, key=key, scope=scope))

    def best_scope_for(self, pwd: PathLike) -> Optional[Tuple[Path, Dict[str, str]]]:
        """Deepest directory scope that applies at ``pwd``, if any."""
        return best_scope_for(self.scoped, pwd)

    def effective_for(self, pwd: PathLike) -> Dict[str, str]:
        """
        Every variable visible at ``pwd``.

        Returns a fresh dict: the global map overlaid with the best
        directory scope. Directory values win over global ones.
        """
        result = dict(self.globals)
        best = self.best_scope_for(pwd)
        if best is not None:
            result.update(best[1])
        return result

    def get_effective(self, key: str, pwd: PathLike) -> Optional[str]:
        """Value of ``key`` at ``pwd``: directory scope first, then global."""
        best = self.best_scope_for(pwd)
        if best is not None and key in best[1]:
            return best[1][key]
        return self.globals.get(key)

    def status(self) -> StoreStatus:
        return StoreStatus(
            generation=self.generation,
            global_count=len(self.globals),
            scope_count=len(self.scoped),
        )
