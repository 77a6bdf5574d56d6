"""Input traversal: builds the ordered entry list before any archive I/O."""
from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from zipseal.errors import TraversalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    absolute_path: Path
    relative_path: str
    is_directory: bool
    size_bytes: int


@dataclass(frozen=True)
class Manifest:
    entries: tuple[ArchiveEntry, ...]
    total_bytes: int

    def __iter__(self) -> Iterator[ArchiveEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def file_count(self) -> int:
        return sum(1 for entry in self.entries if not entry.is_directory)

    @property
    def directory_count(self) -> int:
        return sum(1 for entry in self.entries if entry.is_directory)

    def relative_paths(self) -> list[str]:
        return [entry.relative_path for entry in self.entries]


@dataclass(frozen=True)
class EntryMetadata:
    path: str
    name: str
    is_dir: bool
    is_symlink: bool
    size: int
    error: str | None = None


def _canonical(path: Path) -> Path:
    try:
        return path.resolve(strict=True)
    except FileNotFoundError as exc:
        if path.is_symlink():
            raise TraversalError(f"Broken symlink: {path}") from exc
        raise TraversalError(f"Path does not exist: {path}") from exc
    except (OSError, RuntimeError) as exc:
        raise TraversalError(f"Cannot resolve path {path}: {exc}") from exc


class _Collector:
    def __init__(self, output: Path) -> None:
        self.output = output
        self.entries: list[ArchiveEntry] = []
        self.seen: set[str] = set()
        self.total_bytes = 0

    def walk(self, path: Path, relative: str) -> None:
        canonical = _canonical(path)
        if canonical == self.output:
            logger.debug("Skipping archive output path %s", path)
            return
        if relative in self.seen:
            raise TraversalError(f"Duplicate archive path: {relative}")
        self.seen.add(relative)

        try:
            info = path.stat()
        except OSError as exc:
            raise TraversalError(f"Cannot read {path}: {exc}") from exc

        if stat.S_ISDIR(info.st_mode):
            self.entries.append(ArchiveEntry(path.absolute(), relative, True, 0))
            if path.is_symlink():
                logger.debug("Not descending into symlinked directory %s", path)
                return
            try:
                children = sorted(path.iterdir(), key=lambda child: child.name)
            except OSError as exc:
                raise TraversalError(f"Cannot list directory {path}: {exc}") from exc
            for child in children:
                self.walk(child, f"{relative}/{child.name}")
        elif stat.S_ISREG(info.st_mode):
            if not os.access(path, os.R_OK):
                raise TraversalError(f"File is not readable: {path}")
            self.entries.append(ArchiveEntry(path.absolute(), relative, False, info.st_size))
            self.total_bytes += info.st_size
        else:
            logger.warning("Skipping special file %s", path)


def collect_manifest(roots: Iterable[str | os.PathLike[str]], output_path: str | os.PathLike[str]) -> Manifest:
    """Enumerate ``roots`` into a :class:`Manifest`.

    Each entry's relative path is taken against the parent of its root, so
    selecting ``docs/`` yields ``docs``, ``docs/a.txt`` and so on. Children
    are visited in name order, directories before their contents. The
    canonical ``output_path`` is never included.
    """
    root_paths = [Path(root) for root in roots]
    if not root_paths:
        raise TraversalError("No input paths were given")

    collector = _Collector(Path(output_path).resolve())
    for root in root_paths:
        canonical_root = _canonical(root)
        # ".." and "foo/.." name their parent only once resolved.
        top_name = root.name if root.name not in ("", "..") else canonical_root.name
        if not top_name:
            raise TraversalError(f"Cannot archive filesystem root: {root}")
        collector.walk(root, top_name)

    if not collector.entries:
        raise TraversalError("Nothing to archive: every input was excluded")
    logger.debug(
        "Collected %d entries (%d bytes) from %d roots",
        len(collector.entries),
        collector.total_bytes,
        len(root_paths),
    )
    return Manifest(entries=tuple(collector.entries), total_bytes=collector.total_bytes)


def list_entry_metadata(paths: Iterable[str | os.PathLike[str]]) -> list[EntryMetadata]:
    """Describe each path for display; failures are reported per entry."""
    result: list[EntryMetadata] = []
    for raw in paths:
        path = Path(raw)
        name = path.name or str(path)
        is_symlink = path.is_symlink()
        try:
            info = path.stat()
        except OSError as exc:
            error = f"Broken symlink: {path}" if is_symlink else f"Cannot access {path}: {exc.strerror or exc}"
            result.append(EntryMetadata(str(path), name, False, is_symlink, 0, error))
            continue
        is_dir = stat.S_ISDIR(info.st_mode)
        result.append(
            EntryMetadata(
                path=str(path),
                name=name,
                is_dir=is_dir,
                is_symlink=is_symlink,
                size=0 if is_dir else info.st_size,
            )
        )
    return result
