"""Abstract base class for all pre-push gates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pushgate.config import PushGateConfig
from pushgate.models import ExitStatus, GateResult


class BaseGate(ABC):
    """Base class for pushgate hook gates.

    Each gate checks one concern of the repository and reports a single
    GateResult. Gates share no state and never stop one another.
    """

    # Subclasses must set these
    name: str = ""
    gate_id: str = ""

    def __init__(self, config: PushGateConfig, root: str | Path = ".") -> None:
        self.config = config
        self.root = Path(root)

    @abstractmethod
    def run(self) -> GateResult:
        """Run the gate and return its result.

        Operational failures are raised as PushGateError; the engine turns
        them into a failed result for this gate only.
        """
        ...  # pragma: no cover

    def _result(self, status: ExitStatus, summary: str, details: list[str] | None = None) -> GateResult:
        """Helper to create a GateResult tagged with this gate's id."""
        return GateResult(gate=self.gate_id, status=status, summary=summary, details=details or [])
