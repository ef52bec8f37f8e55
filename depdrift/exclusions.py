"""ExclusionResolver — module names that must never be reported as missing.

Three sources feed the set:

- user ignore patterns, taken verbatim;
- the target package's own identity (a package never misses itself);
- TypeScript path aliases from ``tsconfig.json``, which look like bare
  module imports but resolve to local files.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Iterable

import json5
import structlog

from depdrift.exceptions import AliasConfigParseError
from depdrift.models import ExclusionSet, Package

log = structlog.get_logger("depdrift.exclusions")

ALIAS_CONFIG_NAME = "tsconfig.json"

# "@app/*" -> "@app*", "~/**" -> "~*": collapse a trailing run of "/" and "*".
_TRAILING_WILDCARD_RE = re.compile(r"^(.+?)[/*]+$")


@dataclass(frozen=True)
class PathAliasConfig:
    """Module-resolution aliases of one package.

    Attributes:
        base_directory: Absolute directory bare imports resolve against
            (``compilerOptions.baseUrl``), or None.
        path_mappings: Alias -> target paths (``compilerOptions.paths``).
    """

    base_directory: Path | None = None
    path_mappings: dict[str, list[str]] = field(default_factory=dict)


def load_alias_config(package_dir: Path) -> PathAliasConfig:
    """Read ``tsconfig.json`` from *package_dir*.

    A missing file yields an empty config. Raises AliasConfigParseError
    when the file exists but is not a JSON5 object.
    """
    config_path = package_dir / ALIAS_CONFIG_NAME
    if not config_path.is_file():
        return PathAliasConfig()

    try:
        data = json5.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise AliasConfigParseError(f"cannot parse {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise AliasConfigParseError(f"{config_path} does not contain an object")

    options = data.get("compilerOptions") or {}
    if not isinstance(options, dict):
        raise AliasConfigParseError(f"compilerOptions in {config_path} is not an object")

    base_url = options.get("baseUrl")
    base_directory = package_dir / base_url if isinstance(base_url, str) and base_url else None

    raw_paths = options.get("paths") or {}
    mappings: dict[str, list[str]] = {}
    if isinstance(raw_paths, dict):
        for alias, targets in raw_paths.items():
            if isinstance(targets, str):
                targets = [targets]
            mappings[str(alias)] = [str(t) for t in targets] if isinstance(targets, list) else []

    return PathAliasConfig(base_directory=base_directory, path_mappings=mappings)


def base_directory_aliases(base_directory: Path | None) -> list[str]:
    """Every entry directly under *base_directory*, plus its extension-less name."""
    if base_directory is None:
        return []
    try:
        entries = sorted(p.name for p in base_directory.iterdir())
    except OSError as e:
        log.debug("exclusions.base_directory_unreadable", path=str(base_directory), error=str(e))
        return []
    aliases = dict.fromkeys(entries)
    aliases.update(dict.fromkeys(PurePath(name).stem for name in entries))
    return list(aliases)


def path_mapping_aliases(path_mappings: dict[str, list[str]]) -> list[str]:
    """Each alias key, plus its trailing-wildcard-collapsed prefix form."""
    keys = list(path_mappings)
    collapsed = [_TRAILING_WILDCARD_RE.sub(r"\1*", key) for key in keys]
    return list(dict.fromkeys([*keys, *collapsed]))


def self_exclusions(target: Package) -> list[str]:
    return [target.identity, f"{target.identity}/*"]


def build_exclusions(
    target: Package,
    raw_ignore_patterns: Iterable[str] = (),
    alias_config: PathAliasConfig | None = None,
) -> ExclusionSet:
    """Build the frozen ExclusionSet for one reconciliation of *target*."""
    entries: list[str] = list(raw_ignore_patterns)
    entries.extend(self_exclusions(target))
    # File names such as "[id].tsx" are names, not globs.
    local_names: list[str] = []
    if alias_config is not None:
        local_names = base_directory_aliases(alias_config.base_directory)
        entries.extend(path_mapping_aliases(alias_config.path_mappings))
    return ExclusionSet.of(entries, literals_only=local_names)


def resolve_exclusions(target: Package, raw_ignore_patterns: Iterable[str] = ()) -> ExclusionSet:
    """Load the target's alias config and build its exclusions.

    Alias resolution is best-effort: a broken ``tsconfig.json`` is logged
    and contributes nothing.
    """
    try:
        alias_config = load_alias_config(target.directory)
    except AliasConfigParseError as e:
        log.warning("exclusions.alias_config_invalid", package=target.identity, error=str(e))
        alias_config = PathAliasConfig()

    exclusions = build_exclusions(target, raw_ignore_patterns, alias_config)
    log.debug(
        "exclusions.built",
        package=target.identity,
        literals=len(exclusions.literals),
        patterns=len(exclusions.patterns),
    )
    return exclusions
