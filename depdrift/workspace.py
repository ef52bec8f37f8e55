"""WorkspaceGraph — read-only view of every package in a package.json workspace."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from depdrift.exceptions import (
    ManifestParseError,
    WorkspaceNotFoundError,
    WorkspaceRequiredError,
)
from depdrift.models import Ident, Manifest, Package, parse_ident

log = structlog.get_logger("depdrift.workspace")

MANIFEST_NAME = "package.json"
ROOT_FALLBACK_NAME = "root-workspace"


def read_manifest_data(path: Path) -> dict:
    """Load a package.json as a dict, raising ManifestParseError on failure."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestParseError(f"cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError(f"{path} does not contain a JSON object")
    return data


def _workspace_globs(data: dict) -> list[str] | None:
    """Return the ``workspaces`` globs, or None when the field is absent.

    Accepts both the array form and the ``{"packages": [...]}`` form.
    """
    field = data.get("workspaces")
    if field is None:
        return None
    if isinstance(field, dict):
        field = field.get("packages", [])
    if not isinstance(field, list):
        return []
    return [g for g in field if isinstance(g, str) and g.strip()]


def _dependency_group(data: dict, key: str) -> dict[str, str]:
    group = data.get(key)
    if not isinstance(group, dict):
        return {}
    return {name: str(rng) for name, rng in group.items() if isinstance(name, str)}


def _load_package(directory: Path, root_dir: Path, fallback_name: str) -> Package:
    manifest_path = directory / MANIFEST_NAME
    data = read_manifest_data(manifest_path)

    raw_name = data.get("name")
    ident: Ident | None = None
    if isinstance(raw_name, str):
        try:
            ident = parse_ident(raw_name)
        except ValueError:
            log.warning("workspace.invalid_name", manifest=str(manifest_path), name=raw_name)
    if ident is None:
        ident = Ident(scope=None, name=fallback_name)

    rel = directory.relative_to(root_dir).as_posix()
    return Package(
        ident=ident,
        directory=directory,
        relative_dir=rel or ".",
        manifest=Manifest(
            path=manifest_path,
            regular=_dependency_group(data, "dependencies"),
            development=_dependency_group(data, "devDependencies"),
        ),
    )


def _clean_glob(pattern: str) -> str:
    """Make a workspace glob relative to the root: drop slashes and leading ``./``.

    Returns an empty string for patterns that name the root itself.
    """
    pattern = pattern.strip().strip("/")
    while pattern.startswith("./"):
        pattern = pattern[2:].lstrip("/")
    return "" if pattern == "." else pattern


def _expand_globs(root_dir: Path, globs: list[str]) -> list[Path]:
    """Expand workspace globs into member directories, in declaration order."""
    excluded: set[Path] = set()
    for pattern in globs:
        if pattern.startswith("!"):
            negated = _clean_glob(pattern[1:])
            if negated:
                excluded.update(p.resolve() for p in root_dir.glob(negated))

    members: list[Path] = []
    seen: set[Path] = {root_dir}
    for pattern in globs:
        pattern = _clean_glob(pattern)
        if not pattern or pattern.startswith("!"):
            continue
        for hit in sorted(root_dir.glob(pattern)):
            hit = hit.resolve()
            if hit in seen or hit in excluded:
                continue
            if root_dir not in hit.parents or "node_modules" in hit.relative_to(root_dir).parts:
                continue
            if not (hit.is_dir() and (hit / MANIFEST_NAME).is_file()):
                continue
            seen.add(hit)
            members.append(hit)
    return members


def find_workspace_root(start_dir: Path) -> tuple[Path, list[str]]:
    """Locate the workspace root for *start_dir*.

    The nearest ancestor (inclusive) whose package.json declares
    ``workspaces`` wins; otherwise the nearest package.json forms a
    single-package workspace. Returns (root_dir, workspace_globs).
    """
    start_dir = Path(start_dir).resolve()
    nearest: Path | None = None
    for directory in [start_dir, *start_dir.parents]:
        manifest_path = directory / MANIFEST_NAME
        if not manifest_path.is_file():
            continue
        if nearest is None:
            nearest = directory
            data = read_manifest_data(manifest_path)
        else:
            try:
                data = read_manifest_data(manifest_path)
            except ManifestParseError as e:
                log.warning("workspace.ancestor_manifest_invalid", error=str(e))
                continue
        globs = _workspace_globs(data)
        if globs is not None:
            return directory, globs
    if nearest is None:
        raise WorkspaceNotFoundError(start_dir)
    return nearest, []


class WorkspaceGraph:
    """Immutable snapshot of a workspace: the root package plus its members."""

    def __init__(self, root_dir: Path, packages: list[Package]) -> None:
        if not packages:
            raise ValueError("a workspace needs at least its root package")
        self._root_dir = root_dir
        self._packages: tuple[Package, ...] = tuple(packages)
        self._by_identity: dict[str, Package] = {}
        for pkg in self._packages:
            # Duplicate names: the first discovered package keeps the identity.
            self._by_identity.setdefault(pkg.identity, pkg)

    @classmethod
    def load(cls, start_dir: Path | str) -> WorkspaceGraph:
        """Discover the workspace containing *start_dir*.

        Raises WorkspaceNotFoundError when no package.json exists at or
        above *start_dir*, ManifestParseError on an unreadable manifest.
        """
        root_dir, globs = find_workspace_root(Path(start_dir))
        packages = [_load_package(root_dir, root_dir, ROOT_FALLBACK_NAME)]
        for member_dir in _expand_globs(root_dir, globs):
            packages.append(_load_package(member_dir, root_dir, member_dir.name))

        log.debug(
            "workspace.loaded",
            root=str(root_dir),
            packages=len(packages),
        )
        return cls(root_dir, packages)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def all_packages(self) -> tuple[Package, ...]:
        """All packages in discovery order: root first, then members."""
        return self._packages

    def root_package(self) -> Package:
        return self._packages[0]

    def package_by_identity(self, identity: str) -> Package | None:
        return self._by_identity.get(identity)

    def is_member(self, identity: str) -> bool:
        return identity in self._by_identity

    def package_for_path(self, path: Path | str) -> Package:
        """Return the package owning *path*.

        The owner is the nearest directory at or above *path* holding a
        package.json. Raises WorkspaceRequiredError when that directory is
        neither the root nor a listed member, or when *path* lies outside
        the project.
        """
        path = Path(path).resolve()
        by_dir = {pkg.directory: pkg for pkg in self._packages}
        for directory in [path, *path.parents]:
            if directory in by_dir:
                return by_dir[directory]
            if (directory / MANIFEST_NAME).is_file():
                raise WorkspaceRequiredError(self._root_dir, directory)
        raise WorkspaceRequiredError(self._root_dir, path)
