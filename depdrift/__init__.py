"""depdrift: find imports missing from package.json manifests in a workspace."""

__version__ = "0.1.0"

from depdrift.checker import CheckReport, check_workspace
from depdrift.engine import ReconciliationEngine
from depdrift.exclusions import PathAliasConfig, build_exclusions, load_alias_config
from depdrift.models import (
    ANY_RANGE,
    WORKSPACE_RANGE,
    DependencyGroup,
    ExclusionSet,
    Ident,
    Manifest,
    MissingDependencyEdit,
    Package,
    PlanMode,
)
from depdrift.oracle import DepcheckOracle, UsageOracle
from depdrift.workspace import WorkspaceGraph
from depdrift.writer import ManifestWriter, PackageJsonWriter

__all__ = [
    "ANY_RANGE",
    "WORKSPACE_RANGE",
    "CheckReport",
    "DepcheckOracle",
    "DependencyGroup",
    "ExclusionSet",
    "Ident",
    "Manifest",
    "ManifestWriter",
    "MissingDependencyEdit",
    "Package",
    "PackageJsonWriter",
    "PathAliasConfig",
    "PlanMode",
    "ReconciliationEngine",
    "UsageOracle",
    "WorkspaceGraph",
    "build_exclusions",
    "check_workspace",
    "load_alias_config",
]
