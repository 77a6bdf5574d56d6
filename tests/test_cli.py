from __future__ import annotations

import zipfile
from pathlib import Path

from click.testing import CliRunner

from zipseal.cli import (
    EXIT_CRYPTO,
    EXIT_FS,
    EXIT_SUCCESS,
    EXIT_UNSAFE,
    EXIT_USAGE,
    cli,
    main,
)


def test_cli_encrypt_decrypt_roundtrip(docs_tree: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    archive = tmp_path / "docs.zip"
    out_dir = tmp_path / "out"

    result = runner.invoke(cli, ["encrypt", str(docs_tree), "-o", str(archive), "--password", "pw"])
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert "Files encrypted successfully" in result.output

    result = runner.invoke(cli, ["decrypt", str(archive), str(out_dir), "--password", "pw"])
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert (out_dir / "docs" / "sub" / "b.txt").read_bytes() == b"0123456789"


def test_cli_decrypt_default_output_dir(docs_tree: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    archive = tmp_path / "docs.7z"
    result = runner.invoke(
        cli, ["encrypt", str(docs_tree), "-o", str(archive), "--method", "7z", "--password", "pw"]
    )
    assert result.exit_code == EXIT_SUCCESS, result.output

    result = runner.invoke(cli, ["decrypt", str(archive), "--password", "pw"])
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert (tmp_path / "docs_extracted" / "docs" / "a.txt").read_bytes() == b"hello"


def test_cli_wrong_password(docs_tree: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    archive = tmp_path / "docs.zip"
    runner.invoke(cli, ["encrypt", str(docs_tree), "-o", str(archive), "--password", "pw"])

    result = runner.invoke(cli, ["decrypt", str(archive), str(tmp_path / "out"), "--password", "nope"])
    assert result.exit_code == EXIT_CRYPTO
    assert "Incorrect password" in result.output
    assert "nope" not in result.output


def test_cli_refuses_existing_output(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    archive.write_bytes(b"old")

    result = CliRunner().invoke(cli, ["encrypt", str(docs_tree), "-o", str(archive), "--password", "pw"])

    assert result.exit_code == EXIT_FS
    assert archive.read_bytes() == b"old"


def test_cli_generate_password(docs_tree: Path, tmp_path: Path) -> None:
    archive = tmp_path / "docs.zip"
    result = CliRunner().invoke(
        cli, ["encrypt", str(docs_tree), "-o", str(archive), "--method", "zipcrypto", "--generate-password"]
    )
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert "Generated password:" in result.output
    assert "ZipCrypto" in result.output


def test_cli_password_and_generate_conflict(docs_tree: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli,
        ["encrypt", str(docs_tree), "-o", str(tmp_path / "x.zip"), "--password", "pw", "--generate-password"],
    )
    assert result.exit_code == EXIT_USAGE


def test_cli_unsafe_archive(tmp_path: Path) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../../evil.txt", b"pwned")

    result = CliRunner().invoke(cli, ["decrypt", str(archive), str(tmp_path / "out"), "--password", "pw"])

    assert result.exit_code == EXIT_UNSAFE
    assert not (tmp_path / "evil.txt").exists()


def test_cli_info(docs_tree: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    archive = tmp_path / "docs.zip"
    runner.invoke(cli, ["encrypt", str(docs_tree), "-o", str(archive), "--password", "pw"])

    result = runner.invoke(cli, ["info", str(archive), "--list"])

    assert result.exit_code == EXIT_SUCCESS, result.output
    assert "AES-256" in result.output
    assert "docs/sub/b.txt" in result.output


def test_cli_metadata(docs_tree: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["metadata", str(docs_tree / "a.txt"), str(docs_tree)])
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert "a.txt" in result.output

    result = runner.invoke(cli, ["metadata", str(tmp_path / "missing.txt")])
    assert result.exit_code == EXIT_FS


def test_cli_password_command() -> None:
    result = CliRunner().invoke(cli, ["password"])
    assert result.exit_code == EXIT_SUCCESS
    assert len(result.output.strip()) == 16


def test_main_maps_bad_method_to_usage(docs_tree: Path, tmp_path: Path) -> None:
    code = main(["encrypt", str(docs_tree), "-o", str(tmp_path / "x.zip"), "--method", "rar", "--password", "pw"])
    assert code == EXIT_USAGE
