"""Working-directory handling for the built-in ``cd``."""

from __future__ import annotations

import os
from pathlib import Path

from proterm.errors import DirectoryInvalid


def parse_cd(command: str) -> str | None:
    """Return the ``cd`` target of a trimmed command line, or None if the
    command is not a ``cd``. Bare ``cd`` targets ``~``."""
    if command == "cd":
        return "~"
    if command.startswith("cd ") or command.startswith("cd\t"):
        target = command[3:].strip()
        if len(target) >= 2 and target[0] == target[-1] and target[0] in "'\"":
            target = target[1:-1]
        return target or "~"
    return None


def resolve_directory(
    target: str,
    cwd: Path,
    previous: Path | None = None,
    home: Path | None = None,
) -> Path:
    """Resolve a ``cd`` target against ``cwd``.

    Supports ``~``, ``~/sub``, absolute and relative paths, and ``-`` for
    the previous directory.

    Raises:
        DirectoryInvalid: Target missing or not a directory.
    """
    home = home or Path.home()
    if target == "-":
        if previous is None:
            raise DirectoryInvalid(target, "OLDPWD not set")
        candidate = previous
    elif target == "~":
        candidate = home
    elif target.startswith("~/"):
        candidate = home / target[2:]
    else:
        path = Path(target)
        candidate = path if path.is_absolute() else cwd / path

    try:
        exists = candidate.exists()
        is_dir = exists and candidate.is_dir()
    except OSError as e:
        # ENAMETOOLONG, EACCES and friends are not swallowed by pathlib
        raise DirectoryInvalid(target, e.strerror or str(e)) from e
    if not exists:
        raise DirectoryInvalid(target, "No such file or directory")
    if not is_dir:
        raise DirectoryInvalid(target, "Not a directory")
    # Normalize .. and . without resolving symlinks, like a shell's logical cd
    return Path(os.path.normpath(candidate))


def display_path(path: Path, home: Path | None = None) -> str:
    """Path with the home directory shown as ``~``."""
    home = home or Path.home()
    try:
        relative = path.relative_to(home)
    except ValueError:
        return str(path)
    return "~" if str(relative) == "." else f"~/{relative}"
