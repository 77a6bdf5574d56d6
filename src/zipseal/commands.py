"""Command boundary used by host shells (desktop UI, CLI).

Each command either returns a human-readable success message or raises a
:class:`~zipseal.errors.ZipSealError` whose ``str()`` is the message to show.
Long-running jobs can be run inline or submitted to a single worker thread;
either way only one job runs per :class:`ArchiveCommands` instance.
"""
from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable

from zipseal.archive.core import PasswordLike, decrypt_archive, encrypt_paths
from zipseal.archive.manifest import EntryMetadata, list_entry_metadata
from zipseal.archive.methods import EncryptionMethod
from zipseal.archive.progress import OperationState, ProgressController, ProgressSink
from zipseal.errors import ArchiveIOError
from zipseal.secret import generate_password

PathLike = str | os.PathLike[str]
Job = Callable[[ProgressController], str]


class ArchiveCommands:
    def __init__(self, sink: ProgressSink | None = None) -> None:
        self.state = OperationState()
        self._sink = sink
        self._guard = threading.Lock()
        self._busy = False
        self._executor: ThreadPoolExecutor | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    def generate_password(self) -> str:
        return generate_password()

    def list_entry_metadata(self, paths: Iterable[PathLike]) -> list[EntryMetadata]:
        return list_entry_metadata(paths)

    def encrypt_files(
        self,
        paths: Iterable[PathLike],
        output_path: PathLike,
        password: PasswordLike,
        method: EncryptionMethod | str = EncryptionMethod.AES256,
        *,
        overwrite: bool = True,
    ) -> str:
        """Archive ``paths`` and return ``"Files encrypted successfully to: <output>"``."""
        return self._run(self._encrypt_job(paths, output_path, password, method, overwrite))

    def decrypt_file(self, archive_path: PathLike, output_dir: PathLike, password: PasswordLike | None) -> str:
        """Extract an archive and return ``"File decrypted successfully to: <dir>"``."""
        return self._run(self._decrypt_job(archive_path, output_dir, password))

    def submit_encrypt(
        self,
        paths: Iterable[PathLike],
        output_path: PathLike,
        password: PasswordLike,
        method: EncryptionMethod | str = EncryptionMethod.AES256,
        *,
        overwrite: bool = True,
    ) -> Future[str]:
        return self._submit(self._encrypt_job(paths, output_path, password, method, overwrite))

    def submit_decrypt(
        self,
        archive_path: PathLike,
        output_dir: PathLike,
        password: PasswordLike | None,
    ) -> Future[str]:
        return self._submit(self._decrypt_job(archive_path, output_dir, password))

    def cancel(self) -> None:
        """Cancel the running job, if any. Safe to call at any time."""
        self.state.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self) -> ArchiveCommands:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    @staticmethod
    def _encrypt_job(
        paths: Iterable[PathLike],
        output_path: PathLike,
        password: PasswordLike,
        method: EncryptionMethod | str,
        overwrite: bool,
    ) -> Job:
        selection = list(paths)

        def _job(controller: ProgressController) -> str:
            encrypt_paths(selection, output_path, password, method, controller=controller, overwrite=overwrite)
            return f"Files encrypted successfully to: {output_path}"

        return _job

    @staticmethod
    def _decrypt_job(archive_path: PathLike, output_dir: PathLike, password: PasswordLike | None) -> Job:
        def _job(controller: ProgressController) -> str:
            decrypt_archive(archive_path, output_dir, password, controller=controller)
            return f"File decrypted successfully to: {output_dir}"

        return _job

    def _claim(self) -> None:
        with self._guard:
            if self._busy:
                raise RuntimeError("Another archive job is already running")
            self._busy = True
            self.state.claim()

    def _release(self) -> None:
        with self._guard:
            self._busy = False
            self.state.mark_idle()

    def _execute(self, job: Job) -> str:
        controller = ProgressController(self.state, self._sink)
        try:
            return job(controller)
        except FileExistsError as exc:
            raise ArchiveIOError(str(exc)) from exc

    def _run(self, job: Job) -> str:
        self._claim()
        try:
            return self._execute(job)
        finally:
            self._release()

    def _execute_and_release(self, job: Job) -> str:
        try:
            return self._execute(job)
        finally:
            self._release()

    def _submit(self, job: Job) -> Future[str]:
        self._claim()
        try:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="zipseal-job")
            return self._executor.submit(self._execute_and_release, job)
        except RuntimeError:
            self._release()
            raise
