"""Streaming ZIP writer (AES-256 or traditional ZipCrypto per entry)."""
from __future__ import annotations

import logging
import zlib
from pathlib import Path

import pyzipper

from zipseal.archive.manifest import ArchiveEntry, Manifest
from zipseal.archive.methods import EncryptionMethod
from zipseal.archive.progress import ProgressController
from zipseal.archive.streams import atomic_output, copy_stream
from zipseal.archive.zipcrypto import ZIP_CRYPTO, LegacyZipFile
from zipseal.errors import ArchiveIOError, UnsupportedFeatureError, ZipSealError
from zipseal.secret import Password

logger = logging.getLogger(__name__)

AES_KEY_BITS = 256


class ZipArchiveWriter:
    """Writes every manifest entry into one encrypted, deflated ZIP file.

    Directories become explicit ``name/`` records. File contents are streamed
    in chunks with a cancellation check before each one. The archive is
    built in a temporary sibling file and moved into place only after the
    central directory has been written.
    """

    def __init__(self, method: EncryptionMethod) -> None:
        if method.is_solid:
            raise UnsupportedFeatureError(f"{method.label} is not a streaming ZIP method")
        self.method = method

    def _configure(self, zf: LegacyZipFile, password: Password) -> None:
        zf.setpassword(password.as_bytes())
        if self.method is EncryptionMethod.AES256:
            zf.setencryption(pyzipper.WZ_AES, nbits=AES_KEY_BITS)
        else:
            zf.setencryption(ZIP_CRYPTO)

    def write(self, manifest: Manifest, output: Path, password: Password, controller: ProgressController) -> None:
        if not password:
            raise UnsupportedFeatureError("An empty password cannot protect an archive")
        controller.begin_phase(0, 100, manifest.total_bytes)
        logger.debug("Writing %d entries to %s (%s)", len(manifest), output, self.method.label)
        try:
            with atomic_output(output) as tmp_path:
                with LegacyZipFile(
                    tmp_path,
                    "w",
                    compression=pyzipper.ZIP_DEFLATED,
                    strict_timestamps=False,
                ) as zf:
                    self._configure(zf, password)
                    for entry in manifest:
                        controller.check_cancelled()
                        if entry.is_directory:
                            self._add_directory(zf, entry)
                        else:
                            self._add_file(zf, entry, controller)
        except ZipSealError:
            raise
        except OSError as exc:
            raise ArchiveIOError(f"Failed to write archive {output}: {exc}") from exc
        except (RuntimeError, ValueError, zlib.error) as exc:
            raise ArchiveIOError(f"Archive library failed while writing {output}: {exc}") from exc

    @staticmethod
    def _add_directory(zf: LegacyZipFile, entry: ArchiveEntry) -> None:
        zf.write(entry.absolute_path, arcname=entry.relative_path)

    @staticmethod
    def _add_file(zf: LegacyZipFile, entry: ArchiveEntry, controller: ProgressController) -> None:
        zinfo = zf.zipinfo_cls.from_file(
            entry.absolute_path,
            arcname=entry.relative_path,
            strict_timestamps=False,
        )
        zinfo.compress_type = pyzipper.ZIP_DEFLATED
        with entry.absolute_path.open("rb") as src, zf.open(zinfo, "w") as dest:
            copy_stream(src, dest, controller, status=entry.relative_path)
