"""Pre-push gates for pushgate."""

from pushgate.gates.large_file_gate import LargeFileGate
from pushgate.gates.pinning_gate import PinningGate
from pushgate.gates.secrets_gate import SecretsGate

ALL_GATES = [
    SecretsGate,
    PinningGate,
    LargeFileGate,
]

__all__ = [
    "SecretsGate",
    "PinningGate",
    "LargeFileGate",
    "ALL_GATES",
]
