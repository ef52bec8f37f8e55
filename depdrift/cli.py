"""CLI entry point: depdrift.

    depdrift                          # audit the package containing the cwd
    depdrift packages/web --json      # audit another package, JSON report
    depdrift --ignore-packages 'virtual:*' --write
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Iterable

import click

from depdrift.checker import CheckReport, check_workspace
from depdrift.core.logging import setup_logging
from depdrift.exceptions import (
    InstallError,
    ManifestParseError,
    PersistError,
    WorkspaceNotFoundError,
)
from depdrift.oracle import DEFAULT_SCANNER_COMMAND, DEFAULT_SCANNER_TIMEOUT, DepcheckOracle
from depdrift.writer import DEFAULT_INSTALL_COMMAND, PackageJsonWriter

# Defaults (overridable via env vars)
_DEFAULT_SCANNER_CMD = os.environ.get("DEPDRIFT_SCANNER_CMD", DEFAULT_SCANNER_COMMAND)
_DEFAULT_INSTALL_CMD = os.environ.get("DEPDRIFT_INSTALL_CMD", DEFAULT_INSTALL_COMMAND)


def _scanner_timeout() -> float:
    raw = os.environ.get("DEPDRIFT_SCANNER_TIMEOUT")
    if not raw:
        return DEFAULT_SCANNER_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        click.echo(
            f"Warning: DEPDRIFT_SCANNER_TIMEOUT={raw!r} is not a number, "
            f"using {DEFAULT_SCANNER_TIMEOUT:g}s",
            err=True,
        )
        return DEFAULT_SCANNER_TIMEOUT


def _split_csv(values: Iterable[str]) -> list[str]:
    """Flatten repeated, comma separated option values."""
    out: list[str] = []
    for value in values:
        out.extend(part.strip() for part in value.split(",") if part.strip())
    return out


def _print_report(report: CheckReport, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    if report.clean:
        click.echo("✓ No missing dependencies found!")
        return

    click.echo("Missing dependencies:")
    click.echo(json.dumps(report.missing))
    if report.written:
        click.echo()
        for edit in report.edits:
            click.echo(f"  + {edit.identity}@{edit.range}  -> {edit.package.manifest.path}")
        if report.installed:
            click.echo("Install finished.")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument(
    "path",
    required=False,
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "--ignore-files",
    multiple=True,
    help="Comma separated gitignore-style patterns of files the scanner must skip.",
)
@click.option(
    "--ignore-packages",
    "--ignore-patterns",
    "ignore_packages",
    multiple=True,
    help="Comma separated package names or glob patterns never reported as missing.",
)
@click.option(
    "--write",
    is_flag=True,
    help=(
        "Write missing dependencies to package.json and install. Workspace packages "
        'get "workspace:*", others reuse a range declared elsewhere in the workspace, '
        'otherwise "*".'
    ),
)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option(
    "--no-bootstrap",
    is_flag=True,
    help="Never add the scanner package to the root devDependencies.",
)
@click.option("--scanner-cmd", default=_DEFAULT_SCANNER_CMD, help="Usage scanner command")
@click.option("--install-cmd", default=_DEFAULT_INSTALL_CMD, help="Package manager install command")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(
    path: Path,
    ignore_files: tuple[str, ...],
    ignore_packages: tuple[str, ...],
    write: bool,
    as_json: bool,
    no_bootstrap: bool,
    scanner_cmd: str,
    install_cmd: str,
    verbose: bool,
) -> None:
    """Report imports that no package.json in the workspace declares."""
    setup_logging("DEBUG" if verbose else None)

    oracle = DepcheckOracle(command=scanner_cmd, timeout=_scanner_timeout())
    try:
        report = check_workspace(
            path,
            oracle,
            ignore_files=_split_csv(ignore_files),
            ignore_patterns=_split_csv(ignore_packages),
            write=write,
            writer_factory=lambda root: PackageJsonWriter(root, install_command=install_cmd),
            bootstrap_scanner=not no_bootstrap,
        )
    except (WorkspaceNotFoundError, ManifestParseError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except PersistError as e:
        click.echo(f"Error: failed to write manifest: {e}", err=True)
        sys.exit(1)
    except InstallError as e:
        click.echo(f"Error: manifests were written but install failed: {e}", err=True)
        sys.exit(1)

    _print_report(report, as_json)


if __name__ == "__main__":
    main()
