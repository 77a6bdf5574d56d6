"""Safe extraction of ZIP and 7z archives.

Every entry name is validated before the first byte is written, resource
limits are checked against the sizes the archive declares and again against
the bytes actually produced, and the password is verified on the first
encrypted entry before anything lands in the destination.
"""
from __future__ import annotations

import logging
import stat
import tempfile
import threading
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable

import pyzipper
from py7zr.io import Py7zIO, WriterFactory

from zipseal.archive.methods import is_seven_zip
from zipseal.archive.paths import ArchiveName, ensure_directory, ensure_parent, normalize_archive_name, safe_join
from zipseal.archive.progress import ProgressController
from zipseal.archive.solid import (
    PASSWORD_REQUIRED_MESSAGE,
    STAGING_END,
    WRONG_PASSWORD_MESSAGE,
    extract_to_staging,
    open_solid_archive,
)
from zipseal.archive.streams import STREAM_CHUNK_SIZE, copy_stream, remove_quietly
from zipseal.errors import (
    ArchiveFormatError,
    ArchiveIOError,
    InvalidPassword,
    PathTraversalRejected,
    ResourceLimitExceeded,
    UnsupportedFeatureError,
    ZipSealError,
)
from zipseal.secret import Password

logger = logging.getLogger(__name__)

MAX_TOTAL_SIZE = 10 * 1024 * 1024 * 1024
MAX_ENTRY_COUNT = 10_000

_ZIP_ENCRYPTED = 0x1
_S_IFLNK = 0o120000


@dataclass(frozen=True)
class ExtractionLimits:
    """Zip-bomb limits applied to every extraction."""

    max_total_size: int = MAX_TOTAL_SIZE
    max_entry_count: int = MAX_ENTRY_COUNT

    def check(self, entry_count: int, total_size: int) -> None:
        if entry_count > self.max_entry_count:
            raise ResourceLimitExceeded(
                f"Archive contains {entry_count} entries, more than the limit of {self.max_entry_count}"
            )
        if total_size > self.max_total_size:
            raise ResourceLimitExceeded(
                f"Archive expands to {total_size} bytes, more than the limit of {self.max_total_size}"
            )


DEFAULT_LIMITS = ExtractionLimits()


@dataclass(frozen=True)
class ExtractionResult:
    files: int
    directories: int
    bytes_written: int
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class _PlannedEntry:
    name: ArchiveName
    target: Path
    is_directory: bool
    size: int
    member: object


def _zip_is_symlink(info: pyzipper.ZipInfo) -> bool:
    return stat.S_IFMT(info.external_attr >> 16) == _S_IFLNK


class _ByteBudget:
    """Running total of bytes written, checked after every entry chunk."""

    def __init__(self, limits: ExtractionLimits) -> None:
        self.limits = limits
        self.written = 0

    def consume(self, nbytes: int) -> None:
        self.written += nbytes
        if self.written > self.limits.max_total_size:
            raise ResourceLimitExceeded(
                f"Extraction exceeded the limit of {self.limits.max_total_size} bytes"
            )


class _StagedMember(Py7zIO):
    """Receives one decompressed 7z member from py7zr, chunk by chunk."""

    def __init__(self, factory: _StagingWriterFactory, entry: _PlannedEntry | None, target: Path | None) -> None:
        self._factory = factory
        self._entry = entry
        self._fh: BinaryIO | None = target.open("wb") if target is not None else None
        self._size = 0

    def write(self, s: bytes | bytearray) -> int:
        self._factory.controller.check_cancelled()
        self._size += len(s)
        if self._entry is None or self._fh is None:
            return len(s)
        status = self._entry.name.normalized
        if self._size > self._entry.size:
            raise ResourceLimitExceeded(f"Entry {status} is larger than its declared size")
        self._factory.consume(len(s))
        self._fh.write(s)
        self._factory.controller.advance(len(s), status)
        return len(s)

    def read(self, size: int | None = None) -> bytes:
        return b""

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._size

    def seekable(self) -> bool:
        return False

    def flush(self) -> None:
        if self._fh is not None:
            self._fh.flush()

    def size(self) -> int:
        return self._size

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()


class _StagingWriterFactory(WriterFactory):
    """Streams 7z members into the staging directory under the plan's rules.

    Each chunk is checked for cancellation and counted against the byte
    budget before it is written. Members with no planned file (skipped
    symlinks) are decoded and discarded.
    """

    def __init__(
        self,
        staging: Path,
        plan: list[_PlannedEntry],
        controller: ProgressController,
        budget: _ByteBudget,
    ) -> None:
        self.staging = staging
        self.controller = controller
        self._budget = budget
        self._entries = {entry.name.normalized: entry for entry in plan if not entry.is_directory}
        self._lock = threading.Lock()
        self._members: list[_StagedMember] = []

    def create(self, filename: str) -> Py7zIO:
        relative = PurePosixPath(filename).relative_to(self.staging.as_posix()).as_posix()
        entry = self._entries.get(relative)
        target = None
        if entry is None:
            logger.debug("Discarding unplanned 7z member %s", relative)
        else:
            target = safe_join(self.staging, entry.name)
            ensure_parent(self.staging, target)
        member = _StagedMember(self, entry, target)
        with self._lock:
            self._members.append(member)
        return member

    def consume(self, nbytes: int) -> None:
        with self._lock:
            self._budget.consume(nbytes)

    def close_all(self) -> None:
        with self._lock:
            members, self._members = self._members, []
        for member in members:
            member.close()


class SafeExtractor:
    """Extract one archive into a destination directory."""

    def __init__(self, limits: ExtractionLimits = DEFAULT_LIMITS) -> None:
        self.limits = limits

    def extract(
        self,
        archive: Path,
        destination: Path,
        password: Password | None,
        controller: ProgressController,
    ) -> ExtractionResult:
        if not archive.is_file():
            raise ArchiveIOError(f"Archive not found: {archive}")
        try:
            destination.mkdir(parents=True, exist_ok=True)
            root = destination.resolve(strict=True)
        except OSError as exc:
            raise ArchiveIOError(f"Cannot create output directory {destination}: {exc}") from exc

        try:
            if is_seven_zip(archive):
                return self._extract_solid(archive, root, password, controller)
            return self._extract_zip(archive, root, password, controller)
        except ZipSealError:
            raise
        except OSError as exc:
            raise ArchiveIOError(f"Extraction failed: {exc}") from exc

    def _plan(self, root: Path, names: Iterable[tuple[str, bool, int, object]]) -> tuple[list[_PlannedEntry], int]:
        """Validate every name and compute the declared total size."""
        plan: list[_PlannedEntry] = []
        total = 0
        count = 0
        for raw_name, is_directory, size, member in names:
            count += 1
            name = normalize_archive_name(raw_name)
            target = safe_join(root, name)
            directory = is_directory or name.is_directory
            if not directory:
                total += size
            plan.append(_PlannedEntry(name, target, directory, size, member))
        self.limits.check(count, total)
        return plan, total

    # ZIP

    def _extract_zip(
        self,
        archive: Path,
        root: Path,
        password: Password | None,
        controller: ProgressController,
    ) -> ExtractionResult:
        try:
            zf = pyzipper.AESZipFile(archive)
        except pyzipper.BadZipFile as exc:
            raise ArchiveFormatError(f"Not a valid ZIP archive: {archive}") from exc
        except NotImplementedError as exc:
            raise UnsupportedFeatureError(f"Unsupported ZIP feature: {exc}") from exc

        with zf:
            skipped: list[str] = []
            candidates = []
            for info in zf.infolist():
                if _zip_is_symlink(info):
                    logger.warning("Skipping symlink entry %s", info.filename)
                    skipped.append(info.filename)
                    continue
                candidates.append((info.filename, info.is_dir(), info.file_size, info))
            plan, total = self._plan(root, candidates)

            if password:
                zf.setpassword(password.as_bytes())
            self._verify_zip_password(zf, [entry.member for entry in plan], controller)

            controller.begin_phase(0, 100, total)
            budget = _ByteBudget(self.limits)
            files = directories = 0
            for entry in plan:
                controller.check_cancelled()
                if entry.is_directory:
                    ensure_directory(root, entry.target)
                    directories += 1
                    continue
                ensure_parent(root, entry.target)
                self._write_zip_entry(zf, entry, controller, budget)
                files += 1
        return ExtractionResult(files, directories, budget.written, tuple(skipped))

    @staticmethod
    def _verify_zip_password(zf: pyzipper.AESZipFile, infos: list, controller: ProgressController) -> None:
        """Fully decode the first encrypted file entry, discarding the output.

        A traditional-encryption check byte accepts about one wrong password
        in 256; those surface here as CRC or inflate failures instead.
        """
        first = next(
            (info for info in infos if not info.is_dir() and info.flag_bits & _ZIP_ENCRYPTED),
            None,
        )
        if first is None:
            return
        if not zf.pwd:
            raise InvalidPassword(PASSWORD_REQUIRED_MESSAGE)
        try:
            with zf.open(first) as src:
                remaining = first.file_size + 1
                while remaining > 0:
                    controller.check_cancelled()
                    chunk = src.read(min(STREAM_CHUNK_SIZE, remaining))
                    if not chunk:
                        break
                    remaining -= len(chunk)
        except NotImplementedError as exc:
            raise UnsupportedFeatureError(f"Unsupported ZIP feature in {first.filename}: {exc}") from exc
        except RuntimeError as exc:
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc
        except (pyzipper.BadZipFile, zlib.error) as exc:
            if getattr(first, "wz_aes_version", None) is not None:
                raise ArchiveFormatError(f"Corrupted entry {first.filename}: {exc}") from exc
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc

    def _write_zip_entry(
        self,
        zf: pyzipper.AESZipFile,
        entry: _PlannedEntry,
        controller: ProgressController,
        budget: _ByteBudget,
    ) -> None:
        try:
            self._stream_zip_entry(zf, entry, controller, budget)
        except BaseException:
            remove_quietly(entry.target)
            raise

    @staticmethod
    def _stream_zip_entry(
        zf: pyzipper.AESZipFile,
        entry: _PlannedEntry,
        controller: ProgressController,
        budget: _ByteBudget,
    ) -> None:
        status = entry.name.normalized
        try:
            with zf.open(entry.member) as src, entry.target.open("wb") as dest:
                written = copy_stream(src, dest, controller, status=status, limit=entry.size)
        except NotImplementedError as exc:
            raise UnsupportedFeatureError(f"Unsupported ZIP feature in {status}: {exc}") from exc
        except RuntimeError as exc:
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc
        except (pyzipper.BadZipFile, zlib.error) as exc:
            raise ArchiveFormatError(f"Corrupted entry {status}: {exc}") from exc
        if written > entry.size:
            raise ResourceLimitExceeded(f"Entry {status} is larger than its declared size")
        budget.consume(written)

    # 7z

    def _extract_solid(
        self,
        archive: Path,
        root: Path,
        password: Password | None,
        controller: ProgressController,
    ) -> ExtractionResult:
        with open_solid_archive(archive, password) as sz:
            members = sz.list()
            symlinks = {info.filename.rstrip("/") for info in members if info.is_symlink}
            skipped: list[str] = []
            candidates = []
            for info in members:
                name = info.filename
                if any(name.startswith(link + "/") for link in symlinks):
                    raise PathTraversalRejected(f"Archive entry is nested under a symlink: {name}")
                if info.is_symlink:
                    logger.warning("Skipping symlink entry %s", name)
                    skipped.append(name)
                    continue
                candidates.append((name, info.is_directory, info.uncompressed or 0, info))
            plan, total = self._plan(root, candidates)

            with tempfile.TemporaryDirectory(prefix="zipseal-unpack-") as staging_dir:
                staging = Path(staging_dir).resolve()
                controller.check_cancelled()
                controller.begin_phase(0, STAGING_END, total)
                factory = _StagingWriterFactory(staging, plan, controller, _ByteBudget(self.limits))
                try:
                    extract_to_staging(sz, staging, bool(password), factory)
                finally:
                    factory.close_all()
                controller.check_cancelled()
                return self._copy_staged(plan, staging, root, total, controller, tuple(skipped))

    def _copy_staged(
        self,
        plan: list[_PlannedEntry],
        staging: Path,
        root: Path,
        total: int,
        controller: ProgressController,
        skipped: tuple[str, ...],
    ) -> ExtractionResult:
        controller.begin_phase(STAGING_END, 100, total)
        budget = _ByteBudget(self.limits)
        files = directories = 0
        for entry in plan:
            controller.check_cancelled()
            if entry.is_directory:
                ensure_directory(root, entry.target)
                directories += 1
                continue
            staged = staging.joinpath(*entry.name.parts)
            if staged.is_symlink() or not staged.is_file():
                raise ArchiveFormatError(f"Entry {entry.name.normalized} was not produced by the archive")
            ensure_parent(root, entry.target)
            try:
                with staged.open("rb") as src, entry.target.open("wb") as dest:
                    written = copy_stream(src, dest, controller, status=entry.name.normalized, limit=entry.size)
                    if written > entry.size:
                        raise ResourceLimitExceeded(
                            f"Entry {entry.name.normalized} is larger than its declared size"
                        )
                    budget.consume(written)
            except BaseException:
                remove_quietly(entry.target)
                raise
            files += 1
        return ExtractionResult(files, directories, budget.written, skipped)
