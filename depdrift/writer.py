"""ManifestWriter — persist planned edits into package.json files."""

from __future__ import annotations

import json
import os
import re
import shlex
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

import structlog

from depdrift.exceptions import InstallError, PersistError
from depdrift.models import MissingDependencyEdit

log = structlog.get_logger("depdrift.writer")

DEFAULT_INSTALL_COMMAND = "yarn install"

_INDENT_RE = re.compile(r"^([ \t]+)\S", re.MULTILINE)


@runtime_checkable
class ManifestWriter(Protocol):
    """Interface the reconciliation pass needs from a manifest sink."""

    def apply(self, edits: Sequence[MissingDependencyEdit]) -> list[Path]: ...

    def install(self) -> None: ...


def _detect_indent(text: str) -> str | int:
    m = _INDENT_RE.search(text)
    if m is None:
        return 2
    indent = m.group(1)
    return indent if "\t" in indent else len(indent)


def _write_atomic(path: Path, content: str) -> None:
    """Write *content* next to *path* and swap it in with os.replace."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o777)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class PackageJsonWriter:
    """Apply edits to package.json files and run the package manager install.

    All edits for one manifest land in a single atomic replace, so a
    manifest either shows every planned entry or none of them.
    """

    def __init__(self, root_dir: Path, install_command: str = DEFAULT_INSTALL_COMMAND) -> None:
        self.root_dir = Path(root_dir)
        self.install_command = install_command
        self._lock = threading.Lock()

    def apply(self, edits: Sequence[MissingDependencyEdit]) -> list[Path]:
        """Write *edits*; returns the manifests written, in first-edit order.

        Raises PersistError when a manifest cannot be read, parsed or written.
        Manifests written before the failing one stay written.
        """
        by_manifest: dict[Path, list[MissingDependencyEdit]] = {}
        for edit in edits:
            by_manifest.setdefault(edit.package.manifest.path, []).append(edit)

        written: list[Path] = []
        with self._lock:
            for manifest_path, manifest_edits in by_manifest.items():
                self._apply_one(manifest_path, manifest_edits)
                written.append(manifest_path)
        return written

    def _apply_one(self, manifest_path: Path, edits: list[MissingDependencyEdit]) -> None:
        try:
            text = manifest_path.read_text(encoding="utf-8")
            data = json.loads(text)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistError(f"cannot read {manifest_path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistError(f"{manifest_path} does not contain a JSON object")

        touched: set[str] = set()
        for edit in edits:
            key = edit.group.value
            group = data.get(key)
            if not isinstance(group, dict):
                group = {}
            group[edit.identity] = edit.range
            data[key] = group
            touched.add(key)
        # Package managers keep dependency groups sorted on persist.
        for key in touched:
            data[key] = dict(sorted(data[key].items()))

        content = json.dumps(data, indent=_detect_indent(text), ensure_ascii=False) + "\n"
        try:
            _write_atomic(manifest_path, content)
        except OSError as e:
            raise PersistError(f"cannot write {manifest_path}: {e}") from e

        log.info(
            "writer.manifest_written",
            manifest=str(manifest_path),
            added=[edit.identity for edit in edits],
        )

    def install(self) -> None:
        """Run the install command in the workspace root.

        Raises InstallError on a non-zero exit or a missing executable.
        Already-written manifests are left as they are.
        """
        cmd = shlex.split(self.install_command)
        if not cmd:
            raise InstallError("install command is empty")
        log.info("writer.install_started", command=cmd, cwd=str(self.root_dir))
        try:
            subprocess.run(
                cmd,
                cwd=self.root_dir,
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise InstallError(f"install command not found: {cmd[0]}") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip()
            raise InstallError(
                f"install failed (exit {e.returncode}): {detail}"
            ) from e
        log.info("writer.install_finished")
