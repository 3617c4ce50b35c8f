"""Pinning gate: workflow references must be pinned to immutable identifiers."""

from __future__ import annotations

from pushgate.gates.base import BaseGate
from pushgate.models import ExitStatus, GateResult
from pushgate.pinning.resolver import BaseResolver
from pushgate.pinning.validator import PinValidator


class PinningGate(BaseGate):
    """Checks workflow pinning and, when enabled, autopins floating tags.

    A successful autopin run counts as remediated: the push proceeds and
    the rewritten files are left in the working tree for review.
    """

    name = "Pinning"
    gate_id = "pinning"

    def __init__(self, config, root=".", resolver: BaseResolver | None = None) -> None:
        super().__init__(config, root)
        self.validator = PinValidator(resolver=resolver, quiet=True)

    def run(self) -> GateResult:
        workflows = self.root / self.config.workflows_dir
        if not workflows.is_dir():
            return self._result(ExitStatus.OK, f"skipped, no {self.config.workflows_dir} directory")

        violations = self.validator.violations(workflows)
        if not violations:
            return self._result(ExitStatus.OK, "all workflow references pinned")

        if not self.config.autopin:
            return self._result(
                ExitStatus.VIOLATIONS,
                f"{len(violations)} unpinned reference(s)",
                [ref.describe() for ref in violations],
            )

        decisions = self.validator.pin_directory(workflows)
        failed = [d for d in decisions if not d.resolved]
        if failed:
            return self._result(
                ExitStatus.VIOLATIONS,
                f"{len(failed)} reference(s) could not be pinned",
                [f"{d.reference.describe()} ({d.error})" for d in failed],
            )
        return self._result(
            ExitStatus.REMEDIATED,
            f"pinned {len(decisions)} reference(s); review and commit the rewritten workflows",
            [f"{d.reference.file}:{d.reference.line_number}: {d.rewritten_value}" for d in decisions],
        )
