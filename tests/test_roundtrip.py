from __future__ import annotations

from pathlib import Path

import pytest

from conftest import tree_snapshot
from zipseal.archive import EncryptionMethod, decrypt_archive, encrypt_paths, inspect_archive
from zipseal.archive.progress import OperationState, ProgressController, ProgressEvent
from zipseal.errors import InvalidPassword, UnsupportedFeatureError
from zipseal.secret import Password

METHODS = [EncryptionMethod.AES256, EncryptionMethod.ZIP_CRYPTO, EncryptionMethod.SEVEN_ZIP]


def _output_for(tmp_path: Path, method: EncryptionMethod) -> Path:
    return tmp_path / f"docs{method.default_suffix}"


@pytest.mark.parametrize("method", METHODS, ids=lambda m: m.value)
def test_roundtrip_restores_tree(docs_tree: Path, tmp_path: Path, method: EncryptionMethod) -> None:
    archive = _output_for(tmp_path, method)
    manifest = encrypt_paths([docs_tree], archive, "correct-horse", method)
    assert manifest.total_bytes == 15

    out_dir = tmp_path / "out"
    result = decrypt_archive(archive, out_dir, "correct-horse")

    assert tree_snapshot(out_dir) == tree_snapshot(docs_tree.parent)
    assert (out_dir / "docs" / "a.txt").read_bytes() == b"hello"
    assert result.files == 2
    assert result.bytes_written == 15


@pytest.mark.parametrize("method", METHODS, ids=lambda m: m.value)
def test_wrong_password_writes_nothing(docs_tree: Path, tmp_path: Path, method: EncryptionMethod) -> None:
    archive = _output_for(tmp_path, method)
    encrypt_paths([docs_tree], archive, "correct-horse", method)

    out_dir = tmp_path / "out"
    with pytest.raises(InvalidPassword, match="Incorrect password"):
        decrypt_archive(archive, out_dir, "wrong")

    assert list(out_dir.iterdir()) == []


@pytest.mark.parametrize("method", METHODS, ids=lambda m: m.value)
def test_missing_password_is_rejected(docs_tree: Path, tmp_path: Path, method: EncryptionMethod) -> None:
    archive = _output_for(tmp_path, method)
    encrypt_paths([docs_tree], archive, "correct-horse", method)

    with pytest.raises(InvalidPassword):
        decrypt_archive(archive, tmp_path / "out", None)


@pytest.mark.parametrize("method", METHODS, ids=lambda m: m.value)
def test_empty_file_and_directory_survive(tmp_path: Path, method: EncryptionMethod) -> None:
    source = tmp_path / "input" / "project"
    (source / "empty_dir").mkdir(parents=True)
    (source / "empty.txt").write_bytes(b"")

    archive = _output_for(tmp_path, method)
    encrypt_paths([source], archive, "pw", method)
    out_dir = tmp_path / "out"
    decrypt_archive(archive, out_dir, "pw")

    assert (out_dir / "project" / "empty_dir").is_dir()
    assert (out_dir / "project" / "empty.txt").read_bytes() == b""


@pytest.mark.parametrize("method", METHODS, ids=lambda m: m.value)
def test_progress_is_monotonic_and_completes(docs_tree: Path, tmp_path: Path, method: EncryptionMethod) -> None:
    (docs_tree / "big.bin").write_bytes(b"\x00" * (512 * 1024))
    events: list[ProgressEvent] = []
    controller = ProgressController(OperationState(), events.append)

    archive = _output_for(tmp_path, method)
    encrypt_paths([docs_tree], archive, "pw", method, controller=controller)

    percents = [event.percent for event in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100

    events.clear()
    decrypt_archive(archive, tmp_path / "out", "pw", controller=controller)
    percents = [event.percent for event in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert not controller.state.running


def test_output_inside_input_is_not_archived(docs_tree: Path, tmp_path: Path) -> None:
    archive = docs_tree / "docs.zip"
    manifest = encrypt_paths([docs_tree], archive, "pw")

    assert "docs/docs.zip" not in manifest.relative_paths()
    summary = inspect_archive(archive)
    assert "docs/docs.zip" not in summary.names


def test_refuses_to_overwrite_when_asked(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    archive.write_bytes(b"keep me")

    with pytest.raises(FileExistsError):
        encrypt_paths([docs_tree], archive, "pw", overwrite=False)
    assert archive.read_bytes() == b"keep me"


def test_empty_password_cannot_encrypt(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    with pytest.raises(UnsupportedFeatureError):
        encrypt_paths([docs_tree], archive, "")
    assert not archive.exists()


@pytest.mark.parametrize(
    ("method", "fmt", "scheme"),
    [
        (EncryptionMethod.AES256, "zip", "ZIP, AES-256"),
        (EncryptionMethod.ZIP_CRYPTO, "zip", "ZIP, ZipCrypto (legacy)"),
        (EncryptionMethod.SEVEN_ZIP, "7z", "7z, AES-256 (solid)"),
    ],
    ids=["aes256", "zipcrypto", "7z"],
)
def test_inspect_reports_scheme(
    docs_tree: Path, tmp_path: Path, method: EncryptionMethod, fmt: str, scheme: str
) -> None:
    archive = _output_for(tmp_path, method)
    encrypt_paths([docs_tree], archive, "pw", method)

    summary = inspect_archive(archive, "pw")

    assert summary.format == fmt
    assert summary.scheme == scheme
    assert summary.encrypted
    assert summary.total_size == 15
    assert "docs/a.txt" in summary.names


def test_correct_horse_scenario(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    encrypt_paths([docs_tree], archive, "correct-horse", EncryptionMethod.AES256)

    summary = inspect_archive(archive)
    files = [name for name in summary.names if not name.endswith("/")]
    assert files == ["docs/a.txt", "docs/sub/b.txt"]
    assert summary.scheme == "ZIP, AES-256"

    good = tmp_path / "good"
    good.mkdir()
    decrypt_archive(archive, good, "correct-horse")
    assert (good / "docs" / "a.txt").read_bytes() == b"hello"
    assert (good / "docs" / "sub" / "b.txt").read_bytes() == b"0123456789"

    bad = tmp_path / "bad"
    bad.mkdir()
    with pytest.raises(InvalidPassword):
        decrypt_archive(archive, bad, "wrong")
    assert list(bad.iterdir()) == []


@pytest.mark.parametrize("wrong", ["wrong", "correct-hors", "Correct-Horse", "x" * 64, "pässwörd"])
def test_solid_wrong_passwords_are_invalid_password(docs_tree: Path, tmp_path: Path, wrong: str) -> None:
    archive = tmp_path / "docs.7z"
    encrypt_paths([docs_tree], archive, "correct-horse", EncryptionMethod.SEVEN_ZIP)

    out_dir = tmp_path / "out"
    with pytest.raises(InvalidPassword, match="Incorrect password"):
        decrypt_archive(archive, out_dir, wrong)
    assert list(out_dir.iterdir()) == []
    with pytest.raises(InvalidPassword):
        inspect_archive(archive, wrong)


def test_solid_decrypt_reports_member_progress(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.7z"
    encrypt_paths([docs_tree], archive, "pw", EncryptionMethod.SEVEN_ZIP)
    events: list[ProgressEvent] = []
    controller = ProgressController(OperationState(), events.append, min_interval=0)

    decrypt_archive(archive, tmp_path / "out", "pw", controller=controller)

    decoded = [event for event in events if event.status == "docs/sub/b.txt"]
    assert decoded
    assert decoded[0].percent <= 50


def test_caller_password_is_left_open(docs_tree: Path, tmp_path: Path) -> None:
    password = Password("pw")
    archive = tmp_path / "docs.zip"

    encrypt_paths([docs_tree], archive, password)
    decrypt_archive(archive, tmp_path / "out", password)

    assert not password.closed
    assert password.as_bytes() == b"pw"
