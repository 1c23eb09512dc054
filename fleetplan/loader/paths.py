"""Reference resolution with repository containment."""

from __future__ import annotations

from pathlib import Path

from fleetplan.loader.exceptions import FileError, PathEscapeError, ValidationError

# Path.resolve() raises RuntimeError for symlink loops before Python 3.13;
# other platforms and versions surface OSError or ValueError.
_RESOLVE_ERRORS = (OSError, RuntimeError, ValueError)


def resolve(root: str | Path, base_dir: str | Path, rel_path: str) -> Path:
    """Resolve ``rel_path`` against ``base_dir`` and confine it to ``root``.

    Both sides are compared after symlink resolution, so a symlink inside
    the repository that points elsewhere is rejected just like a literal
    ``../../etc/passwd``. Components that do not exist yet are resolved
    lexically.

    Returns:
        The real (symlink-free, absolute) path.

    Raises:
        ValidationError: ``rel_path`` is empty.
        FileError: the path cannot be resolved (symlink loop, NUL byte).
        PathEscapeError: the real path is not ``root`` or below it.
    """
    if not rel_path or not str(rel_path).strip():
        raise ValidationError("empty path: reference")
    shown = rel_path.replace("\x00", "\\0")
    if "\x00" in rel_path:
        raise FileError(f'path reference "{shown}": embedded null byte')

    try:
        real_root = Path(root).resolve()
        real = (Path(base_dir) / rel_path).resolve()
    except _RESOLVE_ERRORS as e:
        raise FileError(f'path reference "{shown}": {e}') from e
    if real != real_root and real_root not in real.parents:
        raise PathEscapeError(f'path "{rel_path}" escapes repository root "{root}"')
    return real


def relative_to_root(root: str | Path, path: str | Path) -> str:
    """Display form of ``path``: POSIX and relative to ``root`` when inside it."""
    try:
        return Path(path).resolve().relative_to(Path(root).resolve()).as_posix()
    except _RESOLVE_ERRORS:
        return str(path)
