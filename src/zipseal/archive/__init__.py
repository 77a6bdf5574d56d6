"""Public archive API re-exported for external users.

The objects listed in ``__all__`` form the supported public surface for
Python consumers. Everything else in :mod:`zipseal.archive` is considered
internal and may change without notice.
"""
from __future__ import annotations

from zipseal.archive.core import (
    ArchiveSummary,
    decrypt_archive,
    encrypt_paths,
    inspect_archive,
    writer_for,
)
from zipseal.archive.extractor import (
    MAX_ENTRY_COUNT,
    MAX_TOTAL_SIZE,
    ExtractionLimits,
    ExtractionResult,
    SafeExtractor,
)
from zipseal.archive.manifest import ArchiveEntry, EntryMetadata, Manifest, collect_manifest, list_entry_metadata
from zipseal.archive.methods import METHOD_CHOICES, EncryptionMethod, normalize_method
from zipseal.archive.paths import normalize_archive_name, safe_join
from zipseal.archive.progress import (
    PROGRESS_MIN_INTERVAL,
    OperationState,
    ProgressController,
    ProgressEvent,
    QueueSink,
    SyntheticProgress,
)
from zipseal.archive.solid import SolidArchiveWriter
from zipseal.archive.streams import STREAM_CHUNK_SIZE
from zipseal.archive.writer import ZipArchiveWriter

__all__ = [
    "ArchiveEntry",
    "ArchiveSummary",
    "EncryptionMethod",
    "EntryMetadata",
    "ExtractionLimits",
    "ExtractionResult",
    "MAX_ENTRY_COUNT",
    "MAX_TOTAL_SIZE",
    "METHOD_CHOICES",
    "Manifest",
    "OperationState",
    "PROGRESS_MIN_INTERVAL",
    "ProgressController",
    "ProgressEvent",
    "QueueSink",
    "STREAM_CHUNK_SIZE",
    "SafeExtractor",
    "SolidArchiveWriter",
    "SyntheticProgress",
    "ZipArchiveWriter",
    "collect_manifest",
    "decrypt_archive",
    "encrypt_paths",
    "inspect_archive",
    "list_entry_metadata",
    "normalize_archive_name",
    "normalize_method",
    "safe_join",
    "writer_for",
]
