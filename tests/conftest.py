"""Shared pytest fixtures: on-disk package.json workspaces."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest


def write_manifest(directory: Path, data: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


@pytest.fixture
def make_workspace(tmp_path: Path):
    """Build a workspace under tmp_path.

    ``members`` maps a root-relative directory to its package.json dict.
    """

    def _make(
        root: dict | None = None,
        members: dict[str, dict] | None = None,
        globs: list[str] | None = None,
    ) -> Path:
        root_data = {"name": "@myworkspace/root", "private": True}
        root_data.update(root or {})
        if "workspaces" not in root_data:
            root_data["workspaces"] = globs if globs is not None else ["packages/*"]
        write_manifest(tmp_path, root_data)
        for rel, data in (members or {}).items():
            write_manifest(tmp_path / rel, data)
        return tmp_path

    return _make


@pytest.fixture(autouse=True)
def _reset_root_handlers():
    """CLI tests bind log handlers to CliRunner streams; drop them afterwards."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
