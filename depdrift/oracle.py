"""UsageOracle — which modules does a package's source tree import?

Import extraction is delegated to the ``depcheck`` CLI, run as a
separate process; only its ``using`` listing is consumed here.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

import structlog

from depdrift.exceptions import ScannerError

log = structlog.get_logger("depdrift.oracle")

DEFAULT_SCANNER_COMMAND = "npx --yes depcheck"
DEFAULT_SCANNER_TIMEOUT = 300.0

DEPCHECK_PACKAGE = "depcheck"
DEPCHECK_RANGE = "^1.4.2"


@runtime_checkable
class UsageOracle(Protocol):
    """Interface every usage scanner must satisfy.

    ``required_package`` / ``required_range`` name the package the scanner
    needs declared in the workspace root, or None when it needs nothing.
    """

    required_package: str | None
    required_range: str | None

    def scan(self, directory: Path, ignore_patterns: Sequence[str]) -> list[str]: ...


def gitignore_patterns(root_dir: Path) -> list[str]:
    """Patterns of the workspace root ``.gitignore`` (blank lines and comments dropped)."""
    path = Path(root_dir) / ".gitignore"
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as e:
        log.warning("oracle.gitignore_unreadable", path=str(path), error=str(e))
        return []
    return [line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")]


def parse_depcheck_output(stdout: str) -> list[str]:
    """Extract used module names from ``depcheck --json`` output.

    Raises ScannerError when the output is not the expected JSON object.
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ScannerError(f"depcheck produced invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ScannerError("depcheck output is not a JSON object")
    using = data.get("using") or {}
    if not isinstance(using, dict):
        raise ScannerError("depcheck 'using' field is not an object")
    return list(using)


class DepcheckOracle:
    """Run depcheck against one directory and report the modules it uses."""

    required_package: str | None = DEPCHECK_PACKAGE
    required_range: str | None = DEPCHECK_RANGE

    def __init__(
        self,
        command: str = DEFAULT_SCANNER_COMMAND,
        timeout: float = DEFAULT_SCANNER_TIMEOUT,
    ) -> None:
        self.command = command
        self.timeout = timeout

    def build_command(self, directory: Path, ignore_patterns: Sequence[str]) -> list[str]:
        cmd = [*shlex.split(self.command), str(directory), "--json", "--ignore-bin-package"]
        patterns = [p for p in ignore_patterns if p]
        if patterns:
            cmd.append("--ignore-patterns=" + ",".join(patterns))
        return cmd

    def scan(self, directory: Path, ignore_patterns: Sequence[str]) -> list[str]:
        cmd = self.build_command(directory, ignore_patterns)
        log.debug("oracle.scan_started", directory=str(directory), ignore_patterns=len(ignore_patterns))
        try:
            # depcheck exits non-zero whenever it finds issues; only the JSON matters.
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ScannerError(f"scanner command not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ScannerError(f"scanner timed out after {self.timeout:g}s") from e

        if not proc.stdout.strip():
            raise ScannerError(
                f"scanner produced no output (exit {proc.returncode}): {proc.stderr.strip()}"
            )
        used = parse_depcheck_output(proc.stdout)
        log.debug("oracle.scan_finished", directory=str(directory), used=len(used))
        return used
