"""Workflow reference extractor.

Walks workflow files line by line and tracks block membership through
indentation instead of parsing YAML. The state machine has three states,
each entered by a key line and left by the first non-blank, non-comment line
whose indentation is at or below the key's:

* ``container:`` block: ``image:`` lines are container images
* ``services:`` block: ``image:`` lines are service images
* block scalar (``run: |``): content is skipped entirely

Flow collections spanning several lines, anchors and aliases are not
followed.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from pushgate.errors import WorkflowDirError
from pushgate.models import PinStatus, ReferenceKind, WorkflowReference

_KEY_LINE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<dash>(?:-[ \t]+)*)(?P<key>[A-Za-z_][\w-]*)[ \t]*:(?:[ \t]+(?P<rest>.*))?$"
)
_LEADING = re.compile(r"^[ \t]*(?:-[ \t]+)*")
_BLOCK_SCALAR = re.compile(r"^[|>][+-]?\d*$")
_FLOW_IMAGE = re.compile(r"""(?:^|[{,\s])image\s*:\s*(?P<value>"[^"]*"|'[^']*'|[^,}\s]+)""")
_HEX40 = re.compile(r"^[0-9a-fA-F]{40}$")

LOCAL_PREFIXES = ("./", ".github/")
WORKFLOW_SUFFIXES = (".yml", ".yaml")


@dataclass(frozen=True)
class ScalarValue:
    """A scalar value on a key line, with its column span in the line."""

    value: str
    start: int
    end: int
    quote: str = ""
    comment: str | None = None


@dataclass(frozen=True)
class ReferenceSite:
    """A reference plus where its value sits, for in-place rewriting."""

    reference: WorkflowReference
    scalar: ScalarValue | None


def classify(kind: ReferenceKind, value: str) -> PinStatus:
    """Classify a reference value as pinned, floating, local or malformed."""
    if not value or "${{" in value:
        return PinStatus.MALFORMED

    if kind is ReferenceKind.ACTION:
        if value.startswith(LOCAL_PREFIXES):
            return PinStatus.LOCAL_PATH
        if value.startswith("docker://"):
            return PinStatus.PINNED if "@sha256:" in value else PinStatus.FLOATING_TAG
        if "@" not in value:
            return PinStatus.MALFORMED
        ref = value.rsplit("@", 1)[1]
        return PinStatus.PINNED if _HEX40.match(ref) else PinStatus.FLOATING_TAG

    return PinStatus.PINNED if "@sha256:" in value else PinStatus.FLOATING_TAG


def parse_scalar(line: str, offset: int) -> ScalarValue:
    """Parse the scalar starting at column ``offset`` of ``line``.

    Quoted values keep their quote character so a rewrite can restore it; a
    ``#`` preceded by whitespace starts a trailing comment.
    """
    text = line[offset:]
    stripped = text.lstrip()
    start = offset + (len(text) - len(stripped))

    if stripped[:1] in ("'", '"'):
        quote = stripped[0]
        close = stripped.find(quote, 1)
        if close != -1:
            value = stripped[1:close]
            end = start + close + 1
            tail = line[end:]
            hash_at = tail.find("#")
            comment = tail[hash_at + 1 :].strip() if hash_at != -1 else None
            return ScalarValue(value=value, start=start, end=end, quote=quote, comment=comment)

    match = re.search(r"\s#", stripped)
    if match:
        raw = stripped[: match.start()]
        comment = stripped[match.end() :].strip()
    elif stripped.startswith("#"):
        raw, comment = "", stripped[1:].strip()
    else:
        raw, comment = stripped, None
    value = raw.rstrip()
    return ScalarValue(value=value, start=start, end=start + len(value), comment=comment)


class _BlockState:
    """Indentation thresholds of the currently open blocks."""

    def __init__(self) -> None:
        self.container_indent: int | None = None
        self.services_indent: int | None = None
        self.scalar_indent: int | None = None

    def leave(self, indent: int) -> None:
        if self.container_indent is not None and indent <= self.container_indent:
            self.container_indent = None
        if self.services_indent is not None and indent <= self.services_indent:
            self.services_indent = None

    @property
    def image_kind(self) -> ReferenceKind | None:
        if self.container_indent is not None and (
            self.services_indent is None or self.container_indent > self.services_indent
        ):
            return ReferenceKind.CONTAINER_IMAGE
        if self.services_indent is not None:
            return ReferenceKind.SERVICE_IMAGE
        return None


def extract_sites(text: str, file: str) -> list[ReferenceSite]:
    """Extract every pinnable reference from one workflow file's text."""
    sites: list[ReferenceSite] = []
    state = _BlockState()

    def add(kind: ReferenceKind, line_no: int, scalar: ScalarValue | None, value: str) -> None:
        ref = WorkflowReference(
            file=file,
            line_number=line_no,
            kind=kind,
            raw_value=value,
            pin_status=classify(kind, value),
        )
        sites.append(ReferenceSite(reference=ref, scalar=scalar))

    for line_no, line in enumerate(text.splitlines(), start=1):
        content = line.strip()
        if not content:
            continue

        indent = len(_LEADING.match(line).group(0))

        if state.scalar_indent is not None:
            if indent > state.scalar_indent:
                continue
            state.scalar_indent = None

        if content.startswith("#"):
            continue

        state.leave(indent)

        m = _KEY_LINE.match(line)
        if not m:
            continue
        key = m.group("key")
        rest = m.group("rest") or ""
        value_offset = m.start("rest") if m.group("rest") is not None else len(line)
        scalar = parse_scalar(line, value_offset)

        if _BLOCK_SCALAR.match(scalar.value):
            state.scalar_indent = indent
            continue

        if key == "uses":
            add(ReferenceKind.ACTION, line_no, scalar, scalar.value)
        elif key == "container":
            if not scalar.value:
                state.container_indent = indent
            elif rest.lstrip().startswith("{"):
                flow = _FLOW_IMAGE.search(rest)
                value = flow.group("value").strip("\"'") if flow else ""
                # Flow mappings are reported but never rewritten in place
                add(ReferenceKind.CONTAINER_IMAGE, line_no, None, value)
            else:
                add(ReferenceKind.CONTAINER_IMAGE, line_no, scalar, scalar.value)
        elif key == "services":
            if not scalar.value:
                state.services_indent = indent
        elif key == "image":
            kind = state.image_kind
            if kind is not None:
                add(kind, line_no, scalar, scalar.value)

    return sites


def read_workflow(path: str | Path) -> str:
    """Read a workflow file as UTF-8 text, keeping line endings.

    Raises:
        WorkflowDirError: If the file is not valid UTF-8.
    """
    file_path = Path(path)
    try:
        return file_path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise WorkflowDirError(f"{file_path}: not valid UTF-8 ({e.reason} at byte {e.start})") from e


def extract_references(path: str | Path, display_name: str | None = None) -> list[WorkflowReference]:
    """Extract references from a workflow file on disk."""
    file_path = Path(path)
    text = read_workflow(file_path)
    return [site.reference for site in extract_sites(text, display_name or str(file_path))]


def workflow_files(directory: str | Path) -> list[Path]:
    """List workflow files under ``directory``, recursively and sorted.

    Raises:
        WorkflowDirError: If the directory does not exist.
    """
    root = Path(directory)
    if not root.is_dir():
        raise WorkflowDirError(f"Workflow directory not found: {root}")
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix in WORKFLOW_SUFFIXES)


def iter_references(directory: str | Path) -> Iterator[WorkflowReference]:
    for path in workflow_files(directory):
        yield from extract_references(path)
