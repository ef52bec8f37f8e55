"""One reconciliation pass: graph -> exclusions -> usage -> missing -> edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import structlog

from depdrift.engine import ReconciliationEngine
from depdrift.exceptions import ScannerError
from depdrift.exclusions import resolve_exclusions
from depdrift.models import MissingDependencyEdit, Package, PlanMode
from depdrift.oracle import UsageOracle, gitignore_patterns
from depdrift.workspace import WorkspaceGraph
from depdrift.writer import ManifestWriter, PackageJsonWriter

log = structlog.get_logger("depdrift.checker")

WriterFactory = Callable[[Path], ManifestWriter]


@dataclass
class CheckReport:
    """Outcome of one reconciliation pass."""

    target: Package
    missing: list[str]
    edits: list[MissingDependencyEdit] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    installed: bool = False
    scanner_bootstrapped: bool = False

    @property
    def clean(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {
            "package": self.target.identity,
            "directory": self.target.relative_dir,
            "missing": list(self.missing),
            "edits": [
                {
                    "manifest": str(e.package.manifest.path),
                    "group": e.group.value,
                    "name": e.identity,
                    "range": e.range,
                }
                for e in self.edits
            ],
            "written": [str(p) for p in self.written],
            "installed": self.installed,
        }


def _bootstrap_scanner(
    engine: ReconciliationEngine,
    oracle: UsageOracle,
    writer: ManifestWriter,
    write: bool,
) -> bool:
    """Declare and install the scanner package in the root when absent."""
    if not oracle.required_package or not oracle.required_range:
        return False
    edit = engine.plan_scanner_bootstrap(oracle.required_package, oracle.required_range)
    if edit is None:
        return False
    if not write:
        log.info(
            "checker.scanner_undeclared",
            package=oracle.required_package,
            hint="run with --write to add it to the root devDependencies",
        )
        return False
    writer.apply([edit])
    writer.install()
    log.info("checker.scanner_bootstrapped", package=edit.identity, range=edit.range)
    return True


def check_workspace(
    cwd: Path | str,
    oracle: UsageOracle,
    *,
    ignore_files: Sequence[str] = (),
    ignore_patterns: Sequence[str] = (),
    write: bool = False,
    writer_factory: WriterFactory = PackageJsonWriter,
    bootstrap_scanner: bool = True,
) -> CheckReport:
    """Audit the package containing *cwd* for undeclared imports.

    With *write*, missing entries are added to the right manifest and the
    package manager install is triggered.

    Raises WorkspaceNotFoundError / ManifestParseError when the workspace
    cannot be loaded, PersistError / InstallError from the writer.
    """
    graph = WorkspaceGraph.load(cwd)
    target = graph.package_for_path(cwd)
    writer = writer_factory(graph.root_dir)
    log.info("checker.started", package=target.identity, directory=target.relative_dir)

    bootstrapped = False
    if bootstrap_scanner:
        bootstrapped = _bootstrap_scanner(ReconciliationEngine(graph), oracle, writer, write)
        if bootstrapped:
            graph = WorkspaceGraph.load(cwd)
            target = graph.package_for_path(cwd)
    engine = ReconciliationEngine(graph)

    exclusions = resolve_exclusions(target, ignore_patterns)

    scan_ignores = [*gitignore_patterns(graph.root_dir), *ignore_files]
    try:
        used = oracle.scan(target.directory, scan_ignores)
    except ScannerError as e:
        log.warning("checker.scan_failed", package=target.identity, error=str(e))
        used = []

    missing = engine.compute_missing(target, used, exclusions)
    report = CheckReport(target=target, missing=missing, scanner_bootstrapped=bootstrapped)
    log.info("checker.finished", package=target.identity, used=len(used), missing=len(missing))

    if missing and write:
        report.edits = engine.plan_edits(target, missing, PlanMode.for_target(graph, target))
        report.written = writer.apply(report.edits)
        if report.written:
            writer.install()
            report.installed = True

    return report
