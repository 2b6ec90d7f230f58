"""Variable scopes: global, or bound to a directory.

Directory scopes are always held in canonical form (absolute, symlinks
resolved) so that two spellings of the same directory share one scope.
Directories that do not exist yet are kept as given: a scope may be set
up before the project directory is created.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

PathLike = Union[str, Path]


def canonicalize(path: PathLike) -> Path:
    """Resolve symlinks and relativity, falling back to the path as given."""
    try:
        return Path(path).resolve(strict=True)
    except (OSError, RuntimeError):
        return Path(path)


def is_ancestor(ancestor: PathLike, path: PathLike) -> bool:
    """
    True if ``ancestor`` is ``path`` or one of its parents.

    The comparison is done per path component, so ``/proj`` is an ancestor
    of ``/proj/sub`` but not of ``/project``.
    """
    a_parts = canonicalize(ancestor).parts
    b_parts = canonicalize(path).parts
    return b_parts[: len(a_parts)] == a_parts


@dataclass(frozen=True)
class Scope:
    """
    Where a variable lives.

    ``Scope()`` is the global scope; ``Scope.directory(path)`` binds to a
    directory. Use the constructor helpers rather than passing ``path``
    directly, they take care of canonicalization.
    """

    path: Optional[Path] = None

    @classmethod
    def global_scope(cls) -> "Scope":
        return cls()

    @classmethod
    def directory(cls, path: PathLike) -> "Scope":
        return cls(path=canonicalize(path))

    @property
    def is_global(self) -> bool:
        return self.path is None

    def __str__(self) -> str:
        return "global" if self.path is None else f"dir:{self.path}"


GLOBAL = Scope.global_scope()


def best_scope_for(
    scopes: Dict[Path, Dict[str, str]],
    pwd: PathLike,
) -> Optional[Tuple[Path, Dict[str, str]]]:
    """
    Pick the directory scope that applies at ``pwd``.

    Among all scopes that are ancestors of ``pwd`` the deepest one wins.
    Two distinct ancestors of one directory cannot have the same depth on a
    tree-shaped filesystem, but scope paths that could not be canonicalized
    (relative, or not existing yet) can produce such ties. Ties are broken
    by the lexicographically smallest path string so the choice never
    depends on dict ordering.

    Returns:
        (path, variables) of the chosen scope, or None if no scope applies.
    """
    target = canonicalize(pwd)
    best: Optional[Tuple[Path, Dict[str, str]]] = None
    for directory, variables in _ancestors_of(scopes.items(), target):
        if best is None:
            best = (directory, variables)
            continue
        depth, best_depth = len(directory.parts), len(best[0].parts)
        if depth > best_depth or (depth == best_depth and str(directory) < str(best[0])):
            best = (directory, variables)
    return best


def _ancestors_of(
    items: Iterable[Tuple[Path, Dict[str, str]]],
    target: Path,
) -> Iterable[Tuple[Path, Dict[str, str]]]:
    for directory, variables in items:
        if is_ancestor(directory, target):
            yield directory, variables
