"""Recursive directory listing with glob-style ignore rules."""

import errno
import logging
import os
import stat
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A regular file found under the walk root.

    path: absolute filesystem path.
    name: POSIX path relative to the walk root (archive member name).
    mode: full st_mode of the file (type + permission bits).
    """

    path: str
    name: str
    mode: int


def is_ignored(rel_name: str, patterns: list[str]) -> bool:
    """Return True if rel_name matches any ignore pattern.

    Patterns without a "/" match the basename at any depth (so "node_modules"
    prunes every node_modules directory).  Patterns containing "/" match the
    whole path relative to the root, segment by segment, where a "**" segment
    matches zero or more path segments.  Leading dots are not special.
    """
    parts = rel_name.split("/")
    for pattern in patterns:
        pattern = pattern.strip("/")
        if "/" not in pattern:
            if fnmatchcase(parts[-1], pattern):
                return True
        elif _match_segments(parts, [seg for seg in pattern.split("/") if seg]):
            return True
    return False


def _match_segments(parts: list[str], segments: list[str]) -> bool:
    if not segments:
        return not parts
    if segments[0] == "**":
        return any(_match_segments(parts[i:], segments[1:]) for i in range(len(parts) + 1))
    return (
        bool(parts)
        and fnmatchcase(parts[0], segments[0])
        and _match_segments(parts[1:], segments[1:])
    )


def readdir_recursive(path: str | Path, ignore: list[str] | None = None) -> list[FileEntry]:
    """List every file under path, skipping anything matched by ignore.

    Directory entries are visited in sorted name order, so the result order
    is stable for a given directory state.

    Raises:
        OSError: If path (or any nested entry) cannot be read, a symbolic
                 link is broken, or directory links form a cycle.
    """
    root = Path(path).resolve()
    patterns = list(ignore or [])
    results: list[FileEntry] = []
    _walk(root, root, patterns, results, seen=set())
    logger.debug("readdir_recursive(%s): %d files", root, len(results))
    return results


def _walk(
    root: Path,
    current: Path,
    patterns: list[str],
    results: list[FileEntry],
    seen: set[tuple[int, int]],
) -> None:
    st = os.stat(current)
    key = (st.st_dev, st.st_ino)
    if key in seen:
        raise OSError(errno.ELOOP, "Directory link cycle", str(current))
    seen = seen | {key}

    for entry_name in sorted(os.listdir(current)):
        entry = current / entry_name
        rel_name = entry.relative_to(root).as_posix()
        if is_ignored(rel_name, patterns):
            continue
        # os.stat follows links: a dangling link raises FileNotFoundError here
        entry_stat = os.stat(entry)
        if stat.S_ISDIR(entry_stat.st_mode):
            _walk(root, entry, patterns, results, seen)
        elif stat.S_ISREG(entry_stat.st_mode):
            results.append(FileEntry(str(entry), rel_name, entry_stat.st_mode))
