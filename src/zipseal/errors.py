"""Custom exceptions for ZipSeal.

Every failure surfaced by the archive engine is one of the classes below.
``str(exc)`` is the human-readable message shown to the user; messages never
contain the password.
"""


class ZipSealError(Exception):
    """Base exception for ZipSeal."""


class TraversalError(ZipSealError):
    """Input path could not be enumerated (missing, unreadable, broken link)."""


class ArchiveIOError(ZipSealError, OSError):
    """Read or write failure on an input, output or staging path."""


class InvalidPassword(ZipSealError):
    """Password does not decrypt the archive."""


class PathTraversalRejected(ZipSealError):
    """Archive entry would resolve outside the destination directory."""


class ResourceLimitExceeded(ZipSealError):
    """Archive exceeds the total size or entry count limits."""


class Cancelled(ZipSealError):
    """Operation was cancelled by the user."""


class ArchiveFormatError(ZipSealError):
    """Archive is not a supported container or is corrupted."""


class UnsupportedFeatureError(ZipSealError):
    """Requested method or archive feature is not supported."""
