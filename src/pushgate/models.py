"""Data models for pushgate."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable


class ExitStatus(IntEnum):
    """Process exit codes shared by every command."""

    OK = 0
    VIOLATIONS = 1
    REMEDIATED = 2
    PERMISSION_ERROR = 3
    NETWORK_ERROR = 4
    VALIDATION_ERROR = 7
    CONFIG_ERROR = 9


class ScanMode(str, Enum):
    """Where scan targets come from."""

    STAGED = "staged"
    FULL = "full"


class PatternCategory(str, Enum):
    """Closed set of secret signature categories."""

    CLOUD = "cloud"
    FORGE = "forge"
    PLATFORM = "platform"
    WEBHOOK = "webhook"
    BEARER = "bearer"
    PRIVATE_KEY = "private-key"
    CONNECTION_STRING = "connection-string"
    GENERIC = "generic"


class ReferenceKind(str, Enum):
    """What a workflow reference points at."""

    ACTION = "action"
    CONTAINER_IMAGE = "container-image"
    SERVICE_IMAGE = "service-image"

    @property
    def is_image(self) -> bool:
        return self is not ReferenceKind.ACTION


class PinStatus(str, Enum):
    """Pinning classification of a workflow reference."""

    PINNED = "pinned"
    FLOATING_TAG = "floating-tag"
    LOCAL_PATH = "local-path"
    MALFORMED = "malformed"

    @property
    def is_violation(self) -> bool:
        return self in (PinStatus.FLOATING_TAG, PinStatus.MALFORMED)


@dataclass
class DiffFile:
    """A single file within a staged git diff."""

    path: str
    added_lines: list[tuple[int, str]] = field(default_factory=list)
    is_new: bool = False
    is_deleted: bool = False
    old_path: str | None = None


@dataclass(frozen=True)
class ScanTarget:
    """One line handed to the secret scanner."""

    file: str
    line: str
    line_number: int
    origin: ScanMode


@dataclass(frozen=True)
class Finding:
    """A line that matched a secret pattern and no allowlist rule."""

    file: str
    line_number: int
    line: str
    redacted_line: str
    pattern_id: str
    category: PatternCategory

    def render(self, redact: bool = True) -> str:
        text = self.redacted_line if redact else self.line
        text = text.strip()
        if len(text) > 160:
            text = text[:160] + "..."
        return f"{self.file}:{self.line_number}: [{self.category.value}] {self.pattern_id}: {text}"


@dataclass
class ScanReport:
    """Result of one scanner run."""

    mode: ScanMode
    files_scanned: int = 0
    lines_scanned: int = 0
    findings: list[Finding] = field(default_factory=list)

    @property
    def exit_status(self) -> ExitStatus:
        return ExitStatus.VIOLATIONS if self.findings else ExitStatus.OK


@dataclass(frozen=True)
class WorkflowReference:
    """A `uses:` or `image:` reference found in a workflow file."""

    file: str
    line_number: int
    kind: ReferenceKind
    raw_value: str
    pin_status: PinStatus

    def describe(self) -> str:
        return (
            f"{self.file}:{self.line_number}: [{self.kind.value}] "
            f"{self.pin_status.value}: {self.raw_value or '<empty>'}"
        )


@dataclass
class PinDecision:
    """Outcome of trying to pin one floating reference."""

    reference: WorkflowReference
    rewritten_value: str | None = None
    error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.rewritten_value is not None


@dataclass
class RollbackAction:
    """An inverse action registered before a forward mutation."""

    description: str
    callback: Callable[[], None]


@dataclass
class FileOperation:
    """A file mutation recorded by a transaction."""

    path: str
    new_content: str | None
    previous_snapshot: str | None = None


@dataclass
class GateResult:
    """Summary of a single hook gate's run."""

    gate: str
    status: ExitStatus
    summary: str
    details: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status in (ExitStatus.OK, ExitStatus.REMEDIATED)


@dataclass
class HookVerdict:
    """The aggregate verdict of a pre-push run."""

    status: ExitStatus
    results: list[GateResult] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.status != ExitStatus.OK
