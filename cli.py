"""Command-line interface for archinfo utilities."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from .archive_extract import extract_all, open_archive
from .archive_info import ArchiveInfo
from .archive_resolver import MAIN_SOURCE
from .errors import ArchiveError

logger = logging.getLogger(__name__)


def _open(path: Path, fragment: bool) -> ArchiveInfo:
    try:
        return open_archive(path, is_fragment=fragment)
    except ArchiveError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group(context_settings={"auto_envvar_prefix": "ARCHINFO"})
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool):
    """Inspect RAR, ZIP, SRR, PAR2 and SFV files and the archives inside them."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(levelname)s: %(message)s")


@cli.command("summary", help="Print the archive summary as JSON.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--full/--no-full", default=False, help="Include embedded archives.")
@click.option("--fragment", is_flag=True, help="Source is only part of an archive.")
def summary(path: Path, full: bool, fragment: bool):
    with _open(path, fragment) as archive:
        _echo_json(archive.summary(full=full))


@cli.command("list", help="List the files, including those in embedded archives.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--recurse/--no-recurse", default=True, help="Descend into embedded archives.")
@click.option("--all", "include_all", is_flag=True, help="Include checksum and metadata listings too.")
@click.option("--fragment", is_flag=True, help="Source is only part of an archive.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON records.")
def list_files(path: Path, recurse: bool, include_all: bool, fragment: bool, as_json: bool):
    with _open(path, fragment) as archive:
        rows = archive.flat_entries(recurse=recurse, include_all=include_all)
    if as_json:
        _echo_json([row.as_dict() for row in rows])
        return
    for row in rows:
        if row.error:
            click.echo(f"[{row.source}] ERROR: {row.error}")
            continue
        entry = row.entry
        flags = "".join((
            "d" if entry.is_dir else "-",
            "c" if entry.compressed else "-",
            "e" if entry.encrypted else "-",
        ))
        size = "" if entry.size is None else entry.size
        click.echo(f"[{row.source}] {flags} {size:>12} {entry.name}")


@cli.command("extract", help="Extract one stored file by name and source path.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("name")
@click.option("--source", default=MAIN_SOURCE, show_default=True, help="Source path, e.g. 'main > CD1.rar'.")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Destination file.")
@click.option("--fragment", is_flag=True, help="Source is only part of an archive.")
def extract(path: Path, name: str, source: str, output: Path | None, fragment: bool):
    output = output or Path(Path(name.replace("\\", "/")).name)
    with _open(path, fragment) as archive:
        try:
            written = archive.extract_to_destination(name, output, source)
        except ArchiveError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Saved {written} bytes to {output}")


@cli.command("extract-all", help="Extract every stored file into a directory.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("destination", type=click.Path(file_okay=False, path_type=Path))
@click.option("--recurse/--no-recurse", default=True, help="Descend into embedded archives.")
def extract_all_cmd(path: Path, destination: Path, recurse: bool):
    destination.mkdir(parents=True, exist_ok=True)
    with _open(path, False) as archive:
        written, skipped = extract_all(archive, destination, recurse=recurse)
    for source, reason in skipped:
        logger.info("skipped %s (%s)", source, reason)
    click.echo(f"Extracted {len(written)} files, skipped {len(skipped)}.")


@cli.command("dump", help="Print the parsed structures (blocks, records, packets) as JSON.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--fragment", is_flag=True, help="Source is only part of an archive.")
def dump(path: Path, fragment: bool):
    with _open(path, fragment) as archive:
        _echo_json({"type": archive.type.name, "parsed": archive.parsed_dump()})


@cli.command("serve", help="Run the HTTP inspection service.")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", help="Directory to serve archives from.")
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=5000, type=int)
@click.option("--debug/--no-debug", default=False)
def serve(root: Path, host: str, port: int, debug: bool):
    """Run the archinfo web application."""
    from .web import create_app

    app = create_app(root)
    click.echo(f"* Serving {root} on http://{host}:{port} (debug={debug})")
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":  # pragma: no cover
    cli()
