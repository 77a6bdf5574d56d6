"""High-level archive operations shared by the command layer and the CLI."""
from __future__ import annotations

import logging
import os
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

import pyzipper

from zipseal.archive.extractor import DEFAULT_LIMITS, ExtractionLimits, ExtractionResult, SafeExtractor
from zipseal.archive.manifest import Manifest, collect_manifest
from zipseal.archive.methods import ArchiveWriter, EncryptionMethod, is_seven_zip, normalize_method
from zipseal.archive.progress import OperationState, ProgressController
from zipseal.archive.solid import (
    SEVEN_ZIP_ERRORS,
    SolidArchiveWriter,
    detect_header_encryption,
    open_solid_archive,
)
from zipseal.archive.writer import ZipArchiveWriter
from zipseal.errors import ArchiveFormatError, ArchiveIOError, ZipSealError
from zipseal.secret import Password

logger = logging.getLogger(__name__)

PasswordLike = Password | str | bytes
FormatLiteral = Literal["zip", "7z"]

ENCRYPT_CANCELLED_MESSAGE = "Encryption cancelled by user."
DECRYPT_CANCELLED_MESSAGE = "Decryption cancelled by user."


@dataclass(frozen=True)
class ArchiveSummary:
    path: Path
    format: FormatLiteral
    scheme: str
    entry_count: int
    total_size: int
    encrypted: bool
    names: tuple[str, ...]


def writer_for(method: EncryptionMethod | str) -> ArchiveWriter:
    resolved = normalize_method(method)
    if resolved.is_solid:
        return SolidArchiveWriter()
    return ZipArchiveWriter(resolved)


def _ensure_output(path: Path, overwrite: bool) -> None:
    if path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing file: {path}")


def _owned_password(password: PasswordLike | None) -> tuple[Password | None, bool]:
    if password is None:
        return None, False
    secret = Password.coerce(password)
    return secret, secret is not password


def encrypt_paths(
    paths: Iterable[str | os.PathLike[str]],
    output_path: str | os.PathLike[str],
    password: PasswordLike,
    method: EncryptionMethod | str = EncryptionMethod.AES256,
    *,
    controller: ProgressController | None = None,
    overwrite: bool = True,
) -> Manifest:
    """Archive ``paths`` into ``output_path`` with ``method``.

    Returns the manifest that was written. Progress ends at exactly 100 on
    success. On failure or cancellation no file is left at ``output_path``
    (an existing file there is kept untouched).
    """
    writer = writer_for(method)
    output = Path(output_path)
    controller = controller or ProgressController(OperationState())
    controller.cancelled_message = ENCRYPT_CANCELLED_MESSAGE
    secret, owned = _owned_password(password)
    controller.start_job()
    try:
        _ensure_output(output, overwrite)
        manifest = collect_manifest(paths, output)
        writer.write(manifest, output, secret, controller)
        controller.finish(str(output))
        logger.debug("Encrypted %d entries into %s", len(manifest), output)
        return manifest
    finally:
        controller.end_job()
        if owned and secret is not None:
            secret.close()


def decrypt_archive(
    archive_path: str | os.PathLike[str],
    output_dir: str | os.PathLike[str],
    password: PasswordLike | None = None,
    *,
    controller: ProgressController | None = None,
    limits: ExtractionLimits = DEFAULT_LIMITS,
) -> ExtractionResult:
    """Extract ``archive_path`` into ``output_dir``.

    ZIP (AES or traditional encryption) and 7z archives are recognised by
    suffix and signature. Raises :class:`~zipseal.errors.InvalidPassword`
    before anything is written when the password is wrong.
    """
    archive = Path(archive_path)
    destination = Path(output_dir)
    controller = controller or ProgressController(OperationState())
    controller.cancelled_message = DECRYPT_CANCELLED_MESSAGE
    secret, owned = _owned_password(password)
    controller.start_job()
    try:
        result = SafeExtractor(limits).extract(archive, destination, secret, controller)
        controller.finish(str(destination))
        logger.debug(
            "Extracted %d files and %d directories from %s", result.files, result.directories, archive
        )
        return result
    finally:
        controller.end_job()
        if owned and secret is not None:
            secret.close()


def inspect_archive(
    archive_path: str | os.PathLike[str],
    password: PasswordLike | None = None,
) -> ArchiveSummary:
    """List an archive without extracting it."""
    archive = Path(archive_path)
    if not archive.is_file():
        raise ArchiveIOError(f"Archive not found: {archive}")
    secret, owned = _owned_password(password)
    try:
        if is_seven_zip(archive):
            return _inspect_solid(archive, secret)
        return _inspect_zip(archive)
    except ZipSealError:
        raise
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read archive {archive}: {exc}") from exc
    finally:
        if owned and secret is not None:
            secret.close()


def _inspect_zip(archive: Path) -> ArchiveSummary:
    try:
        with pyzipper.AESZipFile(archive) as zf:
            infos = zf.infolist()
    except (pyzipper.BadZipFile, zlib.error, NotImplementedError) as exc:
        raise ArchiveFormatError(f"Not a valid ZIP archive: {archive}") from exc

    encrypted = [info for info in infos if info.flag_bits & 0x1]
    if not encrypted:
        scheme = "none"
    elif any(getattr(info, "wz_aes_version", None) is not None for info in encrypted):
        scheme = EncryptionMethod.AES256.label
    else:
        scheme = EncryptionMethod.ZIP_CRYPTO.label
    return ArchiveSummary(
        path=archive,
        format="zip",
        scheme=scheme,
        entry_count=len(infos),
        total_size=sum(info.file_size for info in infos),
        encrypted=bool(encrypted),
        names=tuple(info.filename for info in infos),
    )


def _inspect_solid(archive: Path, password: Password | None) -> ArchiveSummary:
    # py7zr marks any archive opened with a password as protected, so a
    # plain-header archive is listed without one to learn the real flag.
    header_encrypted = detect_header_encryption(archive)
    with open_solid_archive(archive, password if header_encrypted else None) as sz:
        try:
            members = sz.list()
            encrypted = header_encrypted or sz.needs_password()
        except SEVEN_ZIP_ERRORS as exc:
            raise ArchiveFormatError(f"Corrupted 7z archive: {exc}") from exc
    return ArchiveSummary(
        path=archive,
        format="7z",
        scheme=EncryptionMethod.SEVEN_ZIP.label if encrypted else "none",
        entry_count=len(members),
        total_size=sum(info.uncompressed or 0 for info in members if not info.is_directory),
        encrypted=encrypted,
        names=tuple(info.filename for info in members),
    )
