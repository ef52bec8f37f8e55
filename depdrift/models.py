"""Data models shared by the workspace graph, the engine and the writer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping

if TYPE_CHECKING:
    from depdrift.workspace import WorkspaceGraph

# Range written for intra-workspace links: always resolve to the local copy.
WORKSPACE_RANGE = "workspace:*"
# Range written when nothing in the workspace declares the module yet.
ANY_RANGE = "*"

_GLOB_CHARS = frozenset("*?[")


class DependencyGroup(str, Enum):
    """Dependency groups of a manifest, valued by their package.json key."""

    REGULAR = "dependencies"
    DEVELOPMENT = "devDependencies"


class PlanMode(str, Enum):
    ROOT_ONLY = "root-only"
    TARGET_ONLY = "target-only"

    @classmethod
    def for_target(cls, graph: WorkspaceGraph, target: Package) -> PlanMode:
        """Edits go to the root manifest only when the target *is* the root."""
        if target.directory == graph.root_package().directory:
            return cls.ROOT_ONLY
        return cls.TARGET_ONLY


@dataclass(frozen=True)
class Ident:
    """Package identity: optional scope (without ``@``) plus name."""

    scope: str | None
    name: str

    def __str__(self) -> str:
        if self.scope:
            return f"@{self.scope}/{self.name}"
        return self.name


def parse_ident(text: str) -> Ident:
    """Parse ``@scope/name`` or ``name`` into an :class:`Ident`.

    Raises ValueError on empty input or a scope without a name.
    """
    text = text.strip()
    if not text:
        raise ValueError("empty package identity")
    if text.startswith("@"):
        scope, sep, name = text[1:].partition("/")
        if not sep or not scope or not name:
            raise ValueError(f"invalid scoped package identity: {text!r}")
        return Ident(scope=scope, name=name)
    return Ident(scope=None, name=text)


def normalize_module(ref: str) -> str:
    """Reduce a module reference to its package identity.

    ``@scope/name/sub/path`` -> ``@scope/name``, ``name/sub`` -> ``name``,
    and a trailing ``/*`` is dropped.
    """
    ref = ref.strip()
    if ref.endswith("/*"):
        ref = ref[:-2]
    parts = ref.split("/")
    if ref.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


@dataclass(frozen=True)
class Manifest:
    """Declared dependencies of one package.json, read-only once loaded."""

    path: Path
    regular: Mapping[str, str] = field(default_factory=dict, compare=False)
    development: Mapping[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regular", MappingProxyType(dict(self.regular)))
        object.__setattr__(self, "development", MappingProxyType(dict(self.development)))

    def group(self, group: DependencyGroup) -> Mapping[str, str]:
        if group is DependencyGroup.REGULAR:
            return self.regular
        return self.development

    def iter_declared(self) -> Iterator[tuple[str, str]]:
        """Yield (identity, range) pairs, regular group first, file order."""
        yield from self.regular.items()
        yield from self.development.items()

    def declares(self, identity: str) -> bool:
        return identity in self.regular or identity in self.development


@dataclass(frozen=True)
class Package:
    """A single package discovered in the workspace.

    Attributes:
        ident: The package identity from the manifest ``name`` field.
        directory: Absolute path to the package directory.
        relative_dir: POSIX path relative to the workspace root (``"."``
            for the root package itself).
        manifest: The package's declared dependencies.
    """

    ident: Ident
    directory: Path
    relative_dir: str
    manifest: Manifest

    @property
    def identity(self) -> str:
        return str(self.ident)


@dataclass(frozen=True)
class MissingDependencyEdit:
    """One manifest insertion planned by the engine."""

    package: Package
    identity: str
    range: str
    group: DependencyGroup = DependencyGroup.REGULAR


def is_glob(pattern: str) -> bool:
    return any(ch in _GLOB_CHARS for ch in pattern)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob into a regex where ``*`` does not cross ``/``.

    ``**`` matches across separators, ``?`` matches one non-separator
    character, and ``[...]`` is a character class (``[!...]`` negates).
    """
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = pattern.find("]", i + 2)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body.replace(chr(92), chr(92) * 2)}]")
                i = end
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out) + r"\Z")


@dataclass(frozen=True)
class ExclusionSet:
    """Module names and glob patterns never reported as missing."""

    literals: frozenset[str] = frozenset()
    patterns: tuple[str, ...] = ()
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", tuple(glob_to_regex(p) for p in self.patterns))

    @classmethod
    def of(cls, entries: Iterable[str], literals_only: Iterable[str] = ()) -> ExclusionSet:
        """Split *entries* into literals and globs; *literals_only* are never globs."""
        literals: set[str] = {entry for entry in literals_only if entry}
        patterns: list[str] = []
        for entry in entries:
            if not entry:
                continue
            if is_glob(entry):
                if entry not in patterns:
                    patterns.append(entry)
            else:
                literals.add(entry)
        return cls(literals=frozenset(literals), patterns=tuple(patterns))

    def matches(self, ref: str) -> bool:
        if ref in self.literals:
            return True
        return any(rx.match(ref) for rx in self._compiled)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, str) and self.matches(ref)

    def __len__(self) -> int:
        return len(self.literals) + len(self.patterns)
