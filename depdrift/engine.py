"""ReconciliationEngine — missing-dependency computation and edit planning."""

from __future__ import annotations

from typing import Iterable

import structlog

from depdrift.models import (
    ANY_RANGE,
    WORKSPACE_RANGE,
    DependencyGroup,
    ExclusionSet,
    MissingDependencyEdit,
    Package,
    PlanMode,
    normalize_module,
)
from depdrift.workspace import WorkspaceGraph

log = structlog.get_logger("depdrift.engine")


class ReconciliationEngine:
    """Pure functions over one immutable :class:`WorkspaceGraph` snapshot."""

    def __init__(self, graph: WorkspaceGraph) -> None:
        self._graph = graph

    @property
    def graph(self) -> WorkspaceGraph:
        return self._graph

    # ── missing set ──────────────────────────────────────────────────────

    def declared_for(self, target: Package) -> set[str]:
        """Identities that count as declared for *target*.

        The root package sees every declaration in the workspace; any
        other package only sees its own manifest.
        """
        if target.directory == self._graph.root_package().directory:
            packages: Iterable[Package] = self._graph.all_packages()
        else:
            packages = (target,)
        declared: set[str] = set()
        for pkg in packages:
            declared.update(name for name, _ in pkg.manifest.iter_declared())
        return declared

    def compute_missing(
        self,
        target: Package,
        used_modules: Iterable[str],
        exclusions: ExclusionSet,
    ) -> list[str]:
        """Return used modules that are neither excluded nor declared.

        Order follows *used_modules* with duplicates removed, so repeated
        calls on the same inputs give the same list.
        """
        declared = self.declared_for(target)
        missing: dict[str, None] = {}
        for raw in used_modules:
            module = normalize_module(raw)
            if not module or module in missing:
                continue
            if exclusions.matches(raw) or exclusions.matches(module):
                continue
            if module in declared:
                continue
            missing[module] = None
        return list(missing)

    # ── edit planning ────────────────────────────────────────────────────

    def resolve_range(self, identity: str) -> str:
        """Pick the version range to declare *identity* with.

        Workspace packages link with ``workspace:*``. Otherwise the first
        declaration in discovery order wins (regular group before
        development group within a package), falling back to ``*``.
        """
        if self._graph.is_member(identity):
            return WORKSPACE_RANGE
        for pkg in self._graph.all_packages():
            for name, rng in pkg.manifest.iter_declared():
                if name == identity:
                    return rng
        return ANY_RANGE

    def plan_edits(
        self,
        target: Package,
        missing_modules: Iterable[str],
        mode: PlanMode,
    ) -> list[MissingDependencyEdit]:
        destination = self._graph.root_package() if mode is PlanMode.ROOT_ONLY else target
        edits: list[MissingDependencyEdit] = []
        seen: set[str] = set()
        for identity in missing_modules:
            if identity in seen:
                continue
            seen.add(identity)
            rng = self.resolve_range(identity)
            edits.append(
                MissingDependencyEdit(
                    package=destination,
                    identity=identity,
                    range=rng,
                    group=DependencyGroup.REGULAR,
                )
            )
            log.debug(
                "engine.edit_planned",
                manifest=str(destination.manifest.path),
                dependency=identity,
                range=rng,
            )
        return edits

    def plan_scanner_bootstrap(
        self, package_name: str, version_range: str
    ) -> MissingDependencyEdit | None:
        """Plan adding the usage scanner to the root's dev dependencies.

        Returns None when the root manifest already declares it.
        """
        root = self._graph.root_package()
        if root.manifest.declares(package_name):
            return None
        return MissingDependencyEdit(
            package=root,
            identity=package_name,
            range=version_range,
            group=DependencyGroup.DEVELOPMENT,
        )
