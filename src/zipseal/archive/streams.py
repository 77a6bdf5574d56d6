"""Chunked copying and all-or-nothing output files."""
from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import IO, Iterator

from zipseal.archive.progress import ProgressController

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 1024 * 64


def copy_stream(
    src: IO[bytes],
    dest: IO[bytes],
    controller: ProgressController,
    *,
    status: str | None = None,
    limit: int | None = None,
) -> int:
    """Copy ``src`` to ``dest`` chunk by chunk, polling cancellation first.

    When ``limit`` is given, at most ``limit + 1`` bytes are read so the
    caller can detect a source that is larger than it claimed.
    """
    copied = 0
    while True:
        controller.check_cancelled()
        size = STREAM_CHUNK_SIZE
        if limit is not None:
            size = min(size, limit - copied + 1)
        chunk = src.read(size)
        if not chunk:
            return copied
        dest.write(chunk)
        copied += len(chunk)
        controller.advance(len(chunk), status)
        if limit is not None and copied > limit:
            return copied


def remove_quietly(path: Path) -> None:
    """Best-effort removal used on error paths; failures are only logged."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to remove partial output %s: %s", path, exc)


@contextlib.contextmanager
def atomic_output(output: Path) -> Iterator[Path]:
    """Yield a sibling temporary path that replaces ``output`` on success.

    On any exception, cancellation included, the temporary file is removed
    and ``output`` is left untouched.
    """
    output.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=output.parent, prefix=f".{output.name}.", suffix=".part")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, output)
    except BaseException:
        remove_quietly(tmp_path)
        raise
    logger.debug("Wrote %s", output)
