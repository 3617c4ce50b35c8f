"""Scan target sources: staged added lines or full tracked-file content.

Path exclusion happens here, before any pattern runs, so excluded build
output never reaches the scanner.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterator
from pathlib import Path

from pushgate.config import PushGateConfig
from pushgate.diff_parser import parse_diff
from pushgate.errors import SourceError
from pushgate.models import ScanMode, ScanTarget

logger = logging.getLogger(__name__)

_BINARY_SNIFF_BYTES = 8192


def _git(args: list[str], root: Path) -> str:
    """Run a git command in ``root`` and return stdout.

    Paths come back unquoted (``core.quotePath=false``). Output is decoded
    as UTF-8, with undecodable bytes replaced.
    """
    try:
        result = subprocess.run(
            ["git", "-c", "core.quotePath=false", *args],
            capture_output=True,
            check=True,
            cwd=root,
        )
    except subprocess.CalledProcessError as e:
        raise SourceError(f"git {' '.join(args)} failed: {_decode(e.stderr).strip()}") from e
    except FileNotFoundError as e:
        raise SourceError("git is not installed or not in PATH") from e
    return _decode(result.stdout)


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    return output.decode("utf-8", errors="replace")


def get_staged_diff(root: Path) -> str:
    """Return added/copied/modified/renamed staged changes with zero context."""
    return _git(["diff", "--cached", "--unified=0", "--diff-filter=ACMR", "--no-color"], root)


def staged_targets(
    config: PushGateConfig, root: Path, diff_text: str | None = None
) -> Iterator[ScanTarget]:
    """Yield every added line of the staged change set.

    Args:
        config: Supplies the excluded path prefixes.
        root: Repository root the diff is taken in.
        diff_text: A pre-recorded unified diff to use instead of asking git.
    """
    if diff_text is None:
        diff_text = get_staged_diff(root)

    for diff_file in parse_diff(diff_text):
        if diff_file.is_deleted:
            continue
        if config.is_path_excluded(diff_file.path):
            logger.debug("Skipping excluded path %s", diff_file.path)
            continue
        for line_no, line in diff_file.added_lines:
            yield ScanTarget(file=diff_file.path, line=line, line_number=line_no, origin=ScanMode.STAGED)


def _tracked_files(root: Path) -> list[str]:
    """List tracked files, falling back to a directory walk outside git."""
    try:
        output = _git(["ls-files", "-z"], root)
    except SourceError:
        logger.debug("git ls-files unavailable in %s, walking directory", root)
        return sorted(
            p.relative_to(root).as_posix()
            for p in root.rglob("*")
            if p.is_file() and ".git" not in p.relative_to(root).parts
        )
    return [p for p in output.split("\0") if p]


def full_targets(config: PushGateConfig, root: Path) -> Iterator[ScanTarget]:
    """Yield every line of every tracked, non-excluded text file."""
    root = root.resolve()
    for rel_path in _tracked_files(root):
        if config.is_path_excluded(rel_path):
            continue

        abs_path = root / rel_path
        if not abs_path.is_file():
            # Deleted in the working tree but still tracked
            continue

        try:
            data = abs_path.read_bytes()
        except OSError as e:
            logger.warning("Cannot read %s: %s", rel_path, e)
            continue

        # Skip binary files (null-byte heuristic)
        if b"\x00" in data[:_BINARY_SNIFF_BYTES]:
            continue

        content = data.decode("utf-8", errors="ignore")
        for line_no, line in enumerate(content.splitlines(), start=1):
            yield ScanTarget(file=rel_path, line=line, line_number=line_no, origin=ScanMode.FULL)
