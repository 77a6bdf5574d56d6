"""7z (solid, AES-256) archives through py7zr.

py7zr compresses a whole directory tree in one call and reports no
progress, so writing is split in two phases: staging the manifest into a
scratch directory (measured, 0-50%) and compressing it (synthetic, 50-95%).
"""
from __future__ import annotations

import contextlib
import logging
import lzma
import struct
import tempfile
from pathlib import Path
from typing import Iterator

import py7zr
from py7zr.exceptions import ArchiveError, PasswordRequired
from py7zr.io import WriterFactory

from zipseal.archive.manifest import Manifest
from zipseal.archive.methods import EncryptionMethod
from zipseal.archive.progress import ProgressController, SyntheticProgress
from zipseal.archive.streams import atomic_output, copy_stream
from zipseal.errors import (
    ArchiveFormatError,
    ArchiveIOError,
    InvalidPassword,
    UnsupportedFeatureError,
    ZipSealError,
)
from zipseal.secret import Password

logger = logging.getLogger(__name__)

STAGING_END = 50
COMPRESS_CAP = 95

# Library failures seen when a 7z stream is corrupt or decrypted with the
# wrong key: the header or a folder decodes into garbage. An unknown
# property id in a garbage header surfaces as TypeError.
SEVEN_ZIP_ERRORS = (
    ArchiveError,
    lzma.LZMAError,
    struct.error,
    EOFError,
    ValueError,
    KeyError,
    IndexError,
    TypeError,
)

PASSWORD_REQUIRED_MESSAGE = "Archive is password protected; a password is required"
WRONG_PASSWORD_MESSAGE = "Incorrect password for archive"


def _top_level_names(manifest: Manifest) -> list[str]:
    names: list[str] = []
    for entry in manifest:
        top = entry.relative_path.split("/", 1)[0]
        if top not in names:
            names.append(top)
    return names


class SolidArchiveWriter:
    """Stage-then-compress writer producing a header-encrypted 7z archive."""

    method = EncryptionMethod.SEVEN_ZIP

    def write(self, manifest: Manifest, output: Path, password: Password, controller: ProgressController) -> None:
        if not password:
            raise UnsupportedFeatureError("An empty password cannot protect an archive")
        try:
            with tempfile.TemporaryDirectory(prefix="zipseal-stage-") as staging_dir:
                staging = Path(staging_dir)
                self._stage(manifest, staging, controller)
                with atomic_output(output) as tmp_path:
                    self._compress(manifest, staging, tmp_path, password, controller)
        except ZipSealError:
            raise
        except OSError as exc:
            raise ArchiveIOError(f"Failed to write archive {output}: {exc}") from exc
        except (ArchiveError, lzma.LZMAError, ValueError) as exc:
            raise ArchiveIOError(f"Archive library failed while writing {output}: {exc}") from exc

    @staticmethod
    def _stage(manifest: Manifest, staging: Path, controller: ProgressController) -> None:
        controller.begin_phase(0, STAGING_END, manifest.total_bytes)
        for entry in manifest:
            controller.check_cancelled()
            target = staging.joinpath(*entry.relative_path.split("/"))
            if entry.is_directory:
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with entry.absolute_path.open("rb") as src, target.open("wb") as dest:
                copy_stream(src, dest, controller, status=entry.relative_path)
        controller.report(STAGING_END, "Compressing")
        logger.debug("Staged %d entries in %s", len(manifest), staging)

    @staticmethod
    def _compress(
        manifest: Manifest,
        staging: Path,
        destination: Path,
        password: Password,
        controller: ProgressController,
    ) -> None:
        controller.check_cancelled()
        with SyntheticProgress(controller, start=STAGING_END, cap=COMPRESS_CAP, status="Compressing"):
            with py7zr.SevenZipFile(
                destination,
                "w",
                password=password.reveal(),
                header_encryption=True,
            ) as archive:
                for name in _top_level_names(manifest):
                    archive.writeall(staging / name, arcname=name)
        # Compression cannot be interrupted; a late cancel still discards it.
        controller.check_cancelled()


def detect_header_encryption(path: Path) -> bool:
    """Return True when the archive header itself is encrypted."""
    try:
        with py7zr.SevenZipFile(path, "r"):
            return False
    except PasswordRequired:
        return True
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read archive {path}: {exc}") from exc
    except SEVEN_ZIP_ERRORS as exc:
        raise ArchiveFormatError(f"Not a valid 7z archive: {path}") from exc


@contextlib.contextmanager
def open_solid_archive(path: Path, password: Password | None) -> Iterator[py7zr.SevenZipFile]:
    """Open a 7z archive for reading, mapping header failures to ZipSeal errors."""
    header_encrypted = detect_header_encryption(path)
    if header_encrypted and not password:
        raise InvalidPassword(PASSWORD_REQUIRED_MESSAGE)
    try:
        archive = py7zr.SevenZipFile(path, "r", password=password.reveal() if password else None)
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read archive {path}: {exc}") from exc
    except (PasswordRequired, *SEVEN_ZIP_ERRORS) as exc:
        if header_encrypted:
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc
        raise ArchiveFormatError(f"Not a valid 7z archive: {path}") from exc
    except Exception as exc:
        # Any other failure to parse a decrypted header means the key was wrong.
        if header_encrypted:
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc
        raise
    with archive:
        yield archive


def extract_to_staging(
    archive: py7zr.SevenZipFile,
    staging: Path,
    has_password: bool,
    factory: WriterFactory | None = None,
) -> None:
    """Decompress everything into ``staging``; wrong keys surface here.

    With a ``factory`` every member is handed to it chunk by chunk instead of
    py7zr writing files itself.
    """
    if archive.needs_password() and not has_password:
        raise InvalidPassword(PASSWORD_REQUIRED_MESSAGE)
    try:
        archive.extractall(path=staging, factory=factory)
    except PasswordRequired as exc:
        raise InvalidPassword(PASSWORD_REQUIRED_MESSAGE) from exc
    except SEVEN_ZIP_ERRORS as exc:
        if archive.needs_password():
            raise InvalidPassword(WRONG_PASSWORD_MESSAGE) from exc
        raise ArchiveFormatError(f"Corrupted 7z archive: {exc}") from exc
