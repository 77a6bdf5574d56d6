"""Command line interface for ZipSeal."""

from __future__ import annotations

import getpass
import logging
from concurrent.futures import Future, wait
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from zipseal import __version__
from zipseal.archive import METHOD_CHOICES, EncryptionMethod, inspect_archive, normalize_method
from zipseal.archive.progress import ProgressEvent
from zipseal.commands import ArchiveCommands
from zipseal.errors import (
    ArchiveFormatError,
    ArchiveIOError,
    Cancelled,
    InvalidPassword,
    PathTraversalRejected,
    ResourceLimitExceeded,
    TraversalError,
    UnsupportedFeatureError,
    ZipSealError,
)

EXIT_SUCCESS = 0
EXIT_USAGE = 1
EXIT_CRYPTO = 2
EXIT_FS = 3
EXIT_CORRUPT = 4
EXIT_UNSAFE = 5
EXIT_CANCELLED = 130

POLL_INTERVAL = 0.2

console = Console()
logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return version("zipseal")
    except PackageNotFoundError:
        return __version__


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("zipseal")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)


def _prompt_password(password_opt: str | None, *, confirm: bool = False) -> str:
    if password_opt is not None:
        return password_opt
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        raise click.UsageError("Passwords do not match")
    return password


def _human_size(num: float) -> str:
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if num < 1024 or unit == "TB":
            return f"{num:.1f} {unit}" if unit != "B" else f"{int(num)} {unit}"
        num /= 1024
    return f"{num:.1f} TB"


def _handle_action(action: Callable[[], None]) -> int:
    try:
        action()
    except InvalidPassword as exc:
        console.print(f"[red]{exc}[/red]")
        return EXIT_CRYPTO
    except ArchiveFormatError as exc:
        console.print(f"[red]Error: archive is corrupted or not supported:[/red] {exc}")
        return EXIT_CORRUPT
    except (PathTraversalRejected, ResourceLimitExceeded) as exc:
        console.print(f"[red]Unsafe archive rejected:[/red] {exc}")
        return EXIT_UNSAFE
    except Cancelled as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        return EXIT_CANCELLED
    except UnsupportedFeatureError as exc:
        console.print(f"[red]Unsupported:[/red] {exc}")
        return EXIT_USAGE
    except TraversalError as exc:
        console.print(f"[red]Cannot read input:[/red] {exc}")
        return EXIT_FS
    except ArchiveIOError as exc:
        console.print(f"[red]Filesystem error:[/red] {exc}")
        return EXIT_FS
    except ZipSealError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return EXIT_USAGE
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        return EXIT_FS
    except PermissionError as exc:
        console.print(f"[red]Permission denied:[/red] {exc}")
        return EXIT_FS
    except OSError as exc:  # noqa: BLE001
        console.print(f"[red]Filesystem error:[/red] {exc}")
        return EXIT_FS
    except Exception as exc:  # noqa: BLE001
        logger.debug("Unexpected failure", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {exc}")
        return EXIT_USAGE
    return EXIT_SUCCESS


def _run_with_progress(description: str, start: Callable[[ArchiveCommands], Future[str]]) -> str:
    """Run a job on the worker thread; Ctrl+C requests cooperative cancellation."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
        disable=not console.is_terminal,
    ) as progress:
        task = progress.add_task(description, total=100)

        def _sink(event: ProgressEvent) -> None:
            progress.update(task, completed=event.percent, description=event.status or description)

        with ArchiveCommands(sink=_sink) as commands:
            future = start(commands)
            try:
                while not future.done():
                    wait([future], timeout=POLL_INTERVAL)
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling...[/yellow]")
                commands.cancel()
            return future.result()


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=False,
)
@click.version_option(version=_package_version(), prog_name="ZipSeal")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Password-protected ZIP and 7z archives with safe extraction."""
    _configure_logging(verbose)


@cli.command(
    help="Encrypt files and directories into a password-protected archive.",
    epilog=(
        "Examples:\n  zipseal encrypt docs -o docs.zip\n"
        "  zipseal encrypt a.txt photos -o backup.7z --method 7z\n"
        "  zipseal encrypt docs -o docs.zip --generate-password"
    ),
)
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("-o", "--output", "output_path", required=True, type=click.Path(path_type=Path), help="Archive to create.")
@click.option(
    "--method",
    type=click.Choice(list(METHOD_CHOICES), case_sensitive=False),
    default=EncryptionMethod.AES256.value,
    show_default=True,
    help="Container format and encryption scheme.",
)
@click.option("--password", "password_opt", help="Archive password (will prompt if omitted).")
@click.option(
    "--generate-password",
    "generate",
    is_flag=True,
    default=False,
    help="Generate a random password and print it.",
)
@click.option(
    "--overwrite/--no-overwrite",
    default=False,
    help="Overwrite output if it already exists.",
)
@click.pass_context
def encrypt(
    ctx: click.Context,
    paths: tuple[Path, ...],
    output_path: Path,
    method: str,
    password_opt: str | None,
    generate: bool,
    overwrite: bool,
) -> None:
    if generate and password_opt is not None:
        console.print("[red]Use either --password or --generate-password, not both.[/red]")
        ctx.exit(EXIT_USAGE)
        return
    selected = normalize_method(method)
    if generate:
        password = ArchiveCommands().generate_password()
        console.print(f"Generated password: [bold]{password}[/bold]")
    else:
        password = _prompt_password(password_opt, confirm=True)

    result: dict[str, str] = {}
    code = _handle_action(
        lambda: result.setdefault(
            "message",
            _run_with_progress(
                "Encrypting",
                lambda commands: commands.submit_encrypt(
                    list(paths), output_path, password, selected, overwrite=overwrite
                ),
            ),
        ),
    )
    if code == EXIT_SUCCESS:
        size = output_path.stat().st_size if output_path.exists() else 0
        console.print(f"[green]{result['message']}[/green] ({selected.label}, ~{_human_size(size)}).")
    ctx.exit(code)


@cli.command(
    help="Extract a password-protected ZIP or 7z archive.",
    epilog="Examples:\n  zipseal decrypt docs.zip\n  zipseal decrypt backup.7z ./restored",
)
@click.argument("archive", type=click.Path(path_type=Path))
@click.argument("output_dir", required=False, type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Archive password (will prompt if omitted).")
@click.pass_context
def decrypt(ctx: click.Context, archive: Path, output_dir: Path | None, password_opt: str | None) -> None:
    password = _prompt_password(password_opt)
    destination = output_dir or archive.with_name(f"{archive.stem}_extracted")

    result: dict[str, str] = {}
    code = _handle_action(
        lambda: result.setdefault(
            "message",
            _run_with_progress(
                "Decrypting",
                lambda commands: commands.submit_decrypt(archive, destination, password),
            ),
        ),
    )
    if code == EXIT_SUCCESS:
        console.print(f"[green]{result['message']}[/green]")
    ctx.exit(code)


@cli.command(
    help="List archive contents without extracting them.",
    epilog="Examples:\n  zipseal info docs.zip\n  zipseal info backup.7z --password pw",
)
@click.argument("archive", type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Password, needed for 7z archives with encrypted headers.")
@click.option("--list/--no-list", "show_names", default=False, help="Print every entry name.")
@click.pass_context
def info(ctx: click.Context, archive: Path, password_opt: str | None, show_names: bool) -> None:
    def _run() -> None:
        summary = inspect_archive(archive, password_opt)
        table = Table(show_header=False, box=None)
        table.add_row("Format", summary.format)
        table.add_row("Encryption", summary.scheme)
        table.add_row("Entries", str(summary.entry_count))
        table.add_row("Uncompressed size", f"~{_human_size(summary.total_size)}")
        console.print(f"[bold]{summary.path.name}[/bold]")
        console.print(table)
        if show_names:
            for name in summary.names:
                console.print(f"  {name}", markup=False)

    ctx.exit(_handle_action(_run))


@cli.command(help="Show name, type and size for each path.")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_context
def metadata(ctx: click.Context, paths: tuple[Path, ...]) -> None:
    table = Table()
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Error")
    failed = False
    for entry in ArchiveCommands().list_entry_metadata(paths):
        kind = "directory" if entry.is_dir else "file"
        if entry.is_symlink:
            kind += " (symlink)"
        if entry.error:
            failed = True
        table.add_row(entry.name, kind, "" if entry.is_dir else _human_size(entry.size), entry.error or "")
    console.print(table)
    ctx.exit(EXIT_FS if failed else EXIT_SUCCESS)


@cli.command(help="Print a random 16-character alphanumeric password.")
@click.pass_context
def password(ctx: click.Context) -> None:
    click.echo(ArchiveCommands().generate_password())
    ctx.exit(EXIT_SUCCESS)


def main(argv: list[str] | None = None) -> int:
    try:
        return cli.main(args=argv, prog_name="zipseal", standalone_mode=False)
    except SystemExit as exc:  # noqa: TRY003
        code = exc.code if isinstance(exc.code, int) else EXIT_USAGE
        return code
    except click.ClickException as exc:
        exc.show()
        return EXIT_USAGE
    except click.Abort:
        console.print("[yellow]Aborted.[/yellow]")
        return EXIT_CANCELLED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
