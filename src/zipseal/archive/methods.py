"""Encryption method selection."""
from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Protocol

from zipseal.archive.manifest import Manifest
from zipseal.archive.progress import ProgressController
from zipseal.errors import UnsupportedFeatureError
from zipseal.secret import Password

SEVEN_ZIP_SIGNATURE = b"7z\xbc\xaf\x27\x1c"
SEVEN_ZIP_SUFFIX = ".7z"


class EncryptionMethod(enum.Enum):
    """Container format plus encryption scheme, fixed for one operation."""

    AES256 = "aes256"
    ZIP_CRYPTO = "zipcrypto"
    SEVEN_ZIP = "7z"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_solid(self) -> bool:
        return self is EncryptionMethod.SEVEN_ZIP

    @property
    def default_suffix(self) -> str:
        return SEVEN_ZIP_SUFFIX if self.is_solid else ".zip"


_LABELS = {
    EncryptionMethod.AES256: "ZIP, AES-256",
    EncryptionMethod.ZIP_CRYPTO: "ZIP, ZipCrypto (legacy)",
    EncryptionMethod.SEVEN_ZIP: "7z, AES-256 (solid)",
}

_ALIASES = {
    "aes256": EncryptionMethod.AES256,
    "aes": EncryptionMethod.AES256,
    "aes-256": EncryptionMethod.AES256,
    "strong": EncryptionMethod.AES256,
    "zipcrypto": EncryptionMethod.ZIP_CRYPTO,
    "zip-crypto": EncryptionMethod.ZIP_CRYPTO,
    "legacy": EncryptionMethod.ZIP_CRYPTO,
    "7z": EncryptionMethod.SEVEN_ZIP,
    "sevenzip": EncryptionMethod.SEVEN_ZIP,
    "7zip": EncryptionMethod.SEVEN_ZIP,
    "solid": EncryptionMethod.SEVEN_ZIP,
}

METHOD_CHOICES = tuple(method.value for method in EncryptionMethod)


def normalize_method(method: EncryptionMethod | str) -> EncryptionMethod:
    if isinstance(method, EncryptionMethod):
        return method
    resolved = _ALIASES.get(str(method).strip().lower())
    if resolved is None:
        raise UnsupportedFeatureError(f"Unsupported encryption method: {method}")
    return resolved


def is_seven_zip(path: str | os.PathLike[str]) -> bool:
    """Return True when ``path`` looks like a 7z archive (suffix or signature)."""
    archive = Path(path)
    if archive.suffix.lower() == SEVEN_ZIP_SUFFIX:
        return True
    try:
        with archive.open("rb") as fh:
            return fh.read(len(SEVEN_ZIP_SIGNATURE)) == SEVEN_ZIP_SIGNATURE
    except OSError:
        return False


class ArchiveWriter(Protocol):
    """Common interface of the streaming and solid writers."""

    method: EncryptionMethod

    def write(self, manifest: Manifest, output: Path, password: Password, controller: ProgressController) -> None: ...
