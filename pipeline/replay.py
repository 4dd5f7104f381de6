"""Runs the destination's native import command and checks that it actually imported."""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from core.errors import ReplayError

logger = logging.getLogger(__name__)

IMPORT_PLUGIN = "NativeImportExportPlugin"
DEFAULT_ERROR_MARKERS = ("Fatal error", "Validation errors occurred", "Errors occurred")


def build_import_command(php_path: str, ojs_path: str | Path, xml_path: str | Path, journal_path: str, username: str) -> List[str]:
    return [
        *shlex.split(php_path or 'php'),
        '-d', 'memory_limit=-1',
        str(Path(ojs_path) / 'tools' / 'importExport.php'),
        IMPORT_PLUGIN, 'import',
        Path(xml_path).as_posix(),
        journal_path,
        username,
    ]


@dataclass
class InvocationResult:
    command: str
    output: str
    exit_code: Optional[int]
    deferred: bool = False


class ImportInvoker:
    """Runs one import command."""

    def invoke(self, command: Sequence[str]) -> InvocationResult:
        raise NotImplementedError


class ShellImportInvoker(ImportInvoker):
    def invoke(self, command: Sequence[str]) -> InvocationResult:
        line = shlex.join(command)
        logger.debug("Running %s", line)
        try:
            completed = subprocess.run(
                list(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors='replace',
            )
        except OSError as exc:
            raise ReplayError(f"Failed to run the import command: {exc}") from exc
        return InvocationResult(line, completed.stdout or '', completed.returncode)


class CommandFileInvoker(ImportInvoker):
    """Appends the commands to a shell script instead of running them."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def invoke(self, command: Sequence[str]) -> InvocationResult:
        line = shlex.join(command)
        try:
            with self.path.open('a', encoding='utf-8') as f:
                f.write(line + "\n")
        except OSError as exc:
            raise ReplayError(f"Failed to write the shell command to \"{self.path}\": {exc}") from exc
        return InvocationResult(line, '', None, deferred=True)


class ReplayVerifier:
    """Decides whether an invocation imported the paper.

    A run succeeded when the highest publication id grew and the output carries
    none of the known error markers.
    """

    def __init__(self, error_markers: Sequence[str] = DEFAULT_ERROR_MARKERS):
        self.error_markers = [marker for marker in error_markers if marker]

    def error_marker(self, output: str) -> Optional[str]:
        for marker in self.error_markers:
            if marker in (output or ''):
                return marker
        return None

    def verify(self, before: int, after: int, result: InvocationResult) -> None:
        if result.exit_code:
            logger.warning("The import command exited with code %s", result.exit_code)
        marker = self.error_marker(result.output)
        if marker:
            raise ReplayError(f"The import command reported \"{marker}\"")
        if after <= before:
            raise ReplayError(f"No publication was created (last publication id {before} → {after})")
