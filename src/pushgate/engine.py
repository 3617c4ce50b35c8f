"""Hook engine: runs every enabled gate and produces one pre-push verdict."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from pushgate.config import PushGateConfig
from pushgate.errors import PushGateError
from pushgate.gates import ALL_GATES
from pushgate.gates.base import BaseGate
from pushgate.models import ExitStatus, GateResult, HookVerdict

logger = logging.getLogger(__name__)

_STATUS_EMOJI = {
    ExitStatus.OK: "✅",
    ExitStatus.REMEDIATED: "📌",
    ExitStatus.VIOLATIONS: "🚫",
}


class HookEngine:
    """Orchestrates the pre-push gates and OR-reduces their outcomes.

    Gates are independent: a violation or operational error in one gate is
    recorded as that gate's result and the remaining gates still run.
    """

    def __init__(self, config: PushGateConfig, root: str | Path = ".", gates: list[BaseGate] | None = None) -> None:
        self.config = config
        self.root = Path(root)
        if gates is None:
            gates = []
            for gate_cls in ALL_GATES:
                gate = gate_cls(config, self.root)  # type: ignore
                if config.is_gate_enabled(gate.gate_id):
                    gates.append(gate)
        self._gates = gates

    @property
    def gates(self) -> list[BaseGate]:
        return list(self._gates)

    def run(self) -> HookVerdict:
        """Run all gates, print a per-gate summary and return the verdict."""
        results: list[GateResult] = []
        for gate in self._gates:
            print(f"🔍 {gate.name}...", file=sys.stderr)
            result = self._run_gate(gate)
            results.append(result)
            self._print_result(gate, result)

        status = ExitStatus.OK if all(r.passed for r in results) else ExitStatus.VIOLATIONS
        verdict = HookVerdict(status=status, results=results)

        failed = [r.gate for r in results if not r.passed]
        if failed:
            print(f"\n🚫 Push blocked by: {', '.join(failed)}", file=sys.stderr)
        else:
            print(f"\n✅ All {len(results)} gate(s) passed", file=sys.stderr)
        return verdict

    def _run_gate(self, gate: BaseGate) -> GateResult:
        try:
            return gate.run()
        except PushGateError as e:
            logger.debug("Gate %s failed", gate.gate_id, exc_info=True)
            return GateResult(gate=gate.gate_id, status=e.exit_status, summary=f"error: {e}")
        except OSError as e:
            logger.debug("Gate %s failed", gate.gate_id, exc_info=True)
            return GateResult(gate=gate.gate_id, status=ExitStatus.PERMISSION_ERROR, summary=f"error: {e}")
        except Exception as e:  # noqa: BLE001
            logger.error("Gate %s crashed", gate.gate_id, exc_info=True)
            return GateResult(
                gate=gate.gate_id,
                status=ExitStatus.VALIDATION_ERROR,
                summary=f"error: {type(e).__name__}: {e}",
            )

    def _print_result(self, gate: BaseGate, result: GateResult) -> None:
        emoji = _STATUS_EMOJI.get(result.status, "❌")
        print(f"{emoji} {gate.name}: {result.summary}", file=sys.stderr)
        for line in result.details:
            print(f"   {line}")
