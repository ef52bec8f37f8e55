"""Custom exceptions for depdrift."""

from __future__ import annotations

from pathlib import Path


class DepdriftError(Exception):
    """Base exception for all depdrift errors."""


class WorkspaceNotFoundError(DepdriftError):
    """Raised when no package.json exists at or above the start directory."""

    def __init__(self, start_dir: Path):
        self.start_dir = start_dir
        super().__init__(f"No workspace found at or above {start_dir}")


class ManifestParseError(DepdriftError):
    """Raised when a package.json cannot be read or is not a JSON object."""


class AliasConfigParseError(DepdriftError):
    """Raised when tsconfig.json exists but cannot be parsed."""


class ScannerError(DepdriftError):
    """Raised when the usage scanner fails or returns unreadable output."""


class PersistError(DepdriftError):
    """Raised when a manifest edit cannot be written."""


class InstallError(DepdriftError):
    """Raised when the package manager install step fails."""


class WorkspaceRequiredError(WorkspaceNotFoundError):
    """Raised when a package.json is found that the workspace does not list."""

    def __init__(self, project_dir: Path, package_dir: Path):
        self.project_dir = project_dir
        self.start_dir = package_dir
        DepdriftError.__init__(
            self,
            f"{package_dir} has a package.json but is not a workspace of the project at "
            f"{project_dir}; add it to the root 'workspaces' field",
        )
