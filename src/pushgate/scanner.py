"""Local secret scanner.

A fast pre-filter, not a forensic tool: no network calls, one pass over the
selected lines, at most one finding per line.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from pushgate.catalog import SECRET_PATTERNS, AllowlistRule, SecretPattern, load_allowlist, redact
from pushgate.config import PushGateConfig
from pushgate.models import Finding, ScanMode, ScanReport, ScanTarget
from pushgate.sources import full_targets, staged_targets


class SecretScanner:
    """Applies the pattern catalog and allowlist to scan targets."""

    def __init__(
        self,
        config: PushGateConfig,
        root: str | Path = ".",
        patterns: Iterable[SecretPattern] = SECRET_PATTERNS,
        allowlist: list[AllowlistRule] | None = None,
    ) -> None:
        self.config = config
        self.root = Path(root)
        self.patterns = tuple(patterns)
        if allowlist is None:
            allowlist_path = Path(config.allowlist_path)
            if not allowlist_path.is_absolute():
                allowlist_path = self.root / allowlist_path
            allowlist = load_allowlist(allowlist_path)
        self.allowlist = allowlist

    def scan(self, mode: ScanMode | str = ScanMode.STAGED, diff_text: str | None = None) -> ScanReport:
        """Scan the staged change set or the full tracked tree.

        Args:
            mode: ``staged`` (added lines only) or ``full`` (all tracked content).
            diff_text: Optional recorded diff used in staged mode instead of git.

        Returns:
            A ScanReport; its ``exit_status`` is nonzero iff anything was found.
        """
        mode = ScanMode(mode)
        if mode is ScanMode.STAGED:
            targets = staged_targets(self.config, self.root, diff_text)
        else:
            targets = full_targets(self.config, self.root)
        return self.scan_targets(targets, mode)

    def scan_targets(self, targets: Iterable[ScanTarget], mode: ScanMode = ScanMode.STAGED) -> ScanReport:
        report = ScanReport(mode=mode)
        seen_files: set[str] = set()
        for target in targets:
            seen_files.add(target.file)
            report.lines_scanned += 1
            finding = self.check_line(target)
            if finding is not None:
                report.findings.append(finding)
        report.files_scanned = len(seen_files)
        return report

    def check_line(self, target: ScanTarget) -> Finding | None:
        """Return a finding for the first pattern matching this line, if any."""
        line = target.line
        if any(rule.matches(line) for rule in self.allowlist):
            return None

        # Lock files are exempt from the generic heuristics only; the
        # allowlist above still applies to them.
        lockfile = self.config.is_lockfile(target.file)
        applicable = [p for p in self.patterns if not lockfile or p.applies_to_lockfiles]

        for pattern in applicable:
            if pattern.match(line) is None:
                continue
            spans = [span for p in applicable for span in p.spans(line)]
            return Finding(
                file=target.file,
                line_number=target.line_number,
                line=line,
                redacted_line=redact(line, spans),
                pattern_id=pattern.id,
                category=pattern.category,
            )
        return None
