from __future__ import annotations

import threading
from pathlib import Path

import pytest

from zipseal import commands as commands_module
from zipseal.archive.progress import ProgressEvent, QueueSink
from zipseal.commands import ArchiveCommands
from zipseal.errors import ArchiveIOError, Cancelled, TraversalError, UnsupportedFeatureError


def test_generate_password_is_alphanumeric() -> None:
    password = ArchiveCommands().generate_password()
    assert len(password) == 16
    assert password.isalnum()


def test_encrypt_and_decrypt_messages(docs_tree: Path, tmp_path: Path) -> None:
    sink = QueueSink()
    commands = ArchiveCommands(sink=sink)
    archive = tmp_path / "docs.zip"
    out_dir = tmp_path / "out"

    assert commands.encrypt_files([docs_tree], archive, "pw") == f"Files encrypted successfully to: {archive}"
    assert commands.decrypt_file(archive, out_dir, "pw") == f"File decrypted successfully to: {out_dir}"
    assert sink.drain()[-1].percent == 100
    assert not commands.busy


def test_submit_returns_future(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.7z"
    with ArchiveCommands() as commands:
        future = commands.submit_encrypt([docs_tree], archive, "pw", "7z")
        assert future.result(timeout=60).startswith("Files encrypted successfully")
    assert archive.exists()


def test_second_job_is_refused_while_busy(docs_tree: Path, tmp_path: Path) -> None:
    reached = threading.Event()
    release = threading.Event()

    def blocking_sink(event: ProgressEvent) -> None:
        reached.set()
        release.wait(timeout=30)

    with ArchiveCommands(sink=blocking_sink) as commands:
        future = commands.submit_encrypt([docs_tree], tmp_path / "docs.zip", "pw")
        assert reached.wait(timeout=30)
        assert commands.busy
        with pytest.raises(RuntimeError, match="already running"):
            commands.submit_encrypt([docs_tree], tmp_path / "other.zip", "pw")
        release.set()
        future.result(timeout=60)
    assert not commands.busy


def test_cancel_running_job(docs_tree: Path, tmp_path: Path) -> None:
    (docs_tree / "big.bin").write_bytes(b"\x01" * (1024 * 1024))
    reached = threading.Event()
    release = threading.Event()

    def blocking_sink(event: ProgressEvent) -> None:
        reached.set()
        release.wait(timeout=30)

    archive = tmp_path / "docs.zip"
    with ArchiveCommands(sink=blocking_sink) as commands:
        future = commands.submit_encrypt([docs_tree], archive, "pw")
        assert reached.wait(timeout=30)
        commands.cancel()
        release.set()
        with pytest.raises(Cancelled):
            future.result(timeout=60)
    assert not archive.exists()


def test_cancel_between_submit_and_worker_start(
    docs_tree: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    go = threading.Event()
    real_encrypt = commands_module.encrypt_paths

    def delayed_encrypt(*args, **kwargs):
        assert go.wait(timeout=30)
        return real_encrypt(*args, **kwargs)

    monkeypatch.setattr(commands_module, "encrypt_paths", delayed_encrypt)
    archive = tmp_path / "docs.zip"
    with ArchiveCommands() as commands:
        future = commands.submit_encrypt([docs_tree], archive, "pw")
        assert commands.state.running
        commands.cancel()
        go.set()
        with pytest.raises(Cancelled):
            future.result(timeout=60)
    assert not archive.exists()
    assert not commands.state.running


def test_cancel_when_idle_is_harmless(docs_tree: Path, tmp_path: Path) -> None:
    commands = ArchiveCommands()
    commands.cancel()
    assert commands.encrypt_files([docs_tree], tmp_path / "docs.zip", "pw").startswith("Files encrypted")


def test_unsupported_method(docs_tree: Path, tmp_path: Path) -> None:
    with pytest.raises(UnsupportedFeatureError):
        ArchiveCommands().encrypt_files([docs_tree], tmp_path / "docs.rar", "pw", "rar")


def test_missing_input(tmp_path: Path) -> None:
    with pytest.raises(TraversalError):
        ArchiveCommands().encrypt_files([tmp_path / "missing"], tmp_path / "out.zip", "pw")


def test_existing_output_without_overwrite(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    archive.write_bytes(b"old")
    with pytest.raises(ArchiveIOError, match="Refusing to overwrite"):
        ArchiveCommands().encrypt_files([docs_tree], archive, "pw", overwrite=False)
