"""Secrets gate: runs the secret scanner over the configured change set."""

from __future__ import annotations

from pushgate.gates.base import BaseGate
from pushgate.models import ExitStatus, GateResult
from pushgate.scanner import SecretScanner


class SecretsGate(BaseGate):
    """Blocks the push when the scanner reports any finding."""

    name = "Secrets"
    gate_id = "secrets"

    def run(self) -> GateResult:
        scanner = SecretScanner(self.config, self.root)
        report = scanner.scan(self.config.scan_mode)
        if not report.findings:
            return self._result(
                ExitStatus.OK,
                f"no secrets in {report.lines_scanned} line(s) of {report.files_scanned} file(s)",
            )
        return self._result(
            ExitStatus.VIOLATIONS,
            f"{len(report.findings)} potential secret(s) found",
            [finding.render(redact=True) for finding in report.findings],
        )
