"""Path containment helpers shared by every extraction path."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from zipseal.errors import PathTraversalRejected

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True)
class ArchiveName:
    """A validated, normalized archive entry name."""

    raw: str
    parts: tuple[str, ...]
    is_directory: bool

    @property
    def normalized(self) -> str:
        return "/".join(self.parts)


def normalize_archive_name(name: str) -> ArchiveName:
    """Validate an entry name read from an archive.

    Backslashes are treated as separators and leading ``./`` segments are
    dropped. Absolute paths, drive letters, NUL bytes and ``..`` segments are
    rejected with :class:`PathTraversalRejected`.
    """
    if not name:
        raise PathTraversalRejected("Archive entry has an empty name")
    if "\x00" in name:
        raise PathTraversalRejected(f"Archive entry name contains a NUL byte: {name!r}")

    path = name.replace("\\", "/")
    is_directory = path.endswith("/")
    if path.startswith("/") or _DRIVE_PREFIX.match(path):
        raise PathTraversalRejected(f"Archive entry uses an absolute path: {name}")

    parts: list[str] = []
    for part in PurePosixPath(path).parts:
        if part in {"", "."}:
            continue
        if part == "..":
            raise PathTraversalRejected(f"Archive entry escapes the destination: {name}")
        parts.append(part)

    if not parts:
        raise PathTraversalRejected(f"Archive entry has no usable path: {name}")
    return ArchiveName(raw=name, parts=tuple(parts), is_directory=is_directory)


def _is_within(path: Path, root: Path) -> bool:
    return path == root or str(path).startswith(str(root) + os.sep)


def safe_join(root: Path, name: str | ArchiveName) -> Path:
    """Resolve ``name`` under the canonical ``root`` or raise.

    ``root`` must already be canonical (``Path.resolve()``). Symlinks that
    already exist under ``root`` are followed, so a link pointing outside the
    destination is rejected as well.
    """
    entry = name if isinstance(name, ArchiveName) else normalize_archive_name(name)
    candidate = root.joinpath(*entry.parts)
    resolved = candidate.resolve()
    if not _is_within(resolved, root):
        raise PathTraversalRejected(f"Archive entry escapes the destination: {entry.raw}")
    return candidate


def ensure_parent(root: Path, target: Path) -> None:
    """Create ``target``'s parent and verify it stayed inside ``root``.

    Guards against a parent directory that turned out to be, or was swapped
    for, a symlink leading elsewhere.
    """
    parent = target.parent
    parent.mkdir(parents=True, exist_ok=True)
    if not _is_within(parent.resolve(), root):
        raise PathTraversalRejected(f"Destination directory escapes the output root: {parent}")


def ensure_directory(root: Path, target: Path) -> None:
    target.mkdir(parents=True, exist_ok=True)
    if not _is_within(target.resolve(), root):
        raise PathTraversalRejected(f"Destination directory escapes the output root: {target}")
