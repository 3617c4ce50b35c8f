"""Large file gate: oversized files are not pushed by accident."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pushgate.gates.base import BaseGate
from pushgate.models import ExitStatus, GateResult

logger = logging.getLogger(__name__)


class LargeFileGate(BaseGate):
    """Blocks the push when any working-tree file exceeds the size limit.

    ``.git`` and the configured excluded paths (build output, vendored
    dependencies) are not walked.
    """

    name = "Large files"
    gate_id = "large_files"

    def run(self) -> GateResult:
        limit = int(self.config.large_file_max_mb * 1024 * 1024)
        oversized: list[str] = []
        for rel in self._candidate_files():
            try:
                size = (self.root / rel).stat().st_size
            except OSError as e:
                logger.warning("Cannot stat %s: %s", rel, e)
                continue
            if size > limit:
                oversized.append(f"{rel}: {size / (1024 * 1024):.1f} MB")

        max_mb = f"{self.config.large_file_max_mb:g}"
        if oversized:
            return self._result(ExitStatus.VIOLATIONS, f"{len(oversized)} file(s) over {max_mb} MB", oversized)
        return self._result(ExitStatus.OK, f"no files over {max_mb} MB")

    def _candidate_files(self) -> list[str]:
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = [
                d for d in dirnames if d != ".git" and not self.config.is_path_excluded(f"{prefix}{d}/")
            ]
            for name in filenames:
                rel = f"{prefix}{name}"
                if not self.config.is_path_excluded(rel) and os.path.isfile(os.path.join(dirpath, name)):
                    found.append(rel)
        return sorted(found)
