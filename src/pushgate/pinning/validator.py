"""Pin validation and autopin rewriting for workflow files."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from pushgate.errors import ResolutionError
from pushgate.models import ExitStatus, PinDecision, PinStatus, ReferenceKind, WorkflowReference
from pushgate.pinning.extractor import ReferenceSite, extract_sites, read_workflow, workflow_files
from pushgate.pinning.resolver import BaseResolver, ImageName, RemoteResolver, split_action
from pushgate.transaction import replace_file

logger = logging.getLogger(__name__)


class PinValidator:
    """Checks that workflow references are pinned and optionally pins them.

    Args:
        resolver: Used by autopin to turn tags into SHAs and digests.
            Defaults to a RemoteResolver, created lazily on first use.
        quiet: Suppress progress and summary lines. Violations and
            resolution failures are always printed.
    """

    def __init__(self, resolver: BaseResolver | None = None, quiet: bool = False) -> None:
        self._resolver = resolver
        self.quiet = quiet

    @property
    def resolver(self) -> BaseResolver:
        if self._resolver is None:
            self._resolver = RemoteResolver()
        return self._resolver

    def _say(self, message: str) -> None:
        if not self.quiet:
            print(message, file=sys.stderr)

    # ── check ──────────────────────────────────────────────────

    def violations(self, directory: str | Path) -> list[WorkflowReference]:
        """Return every floating or malformed reference under ``directory``."""
        found: list[WorkflowReference] = []
        for path in workflow_files(directory):
            text = read_workflow(path)
            for site in extract_sites(text, str(path)):
                if site.reference.pin_status.is_violation:
                    found.append(site.reference)
        return found

    def check(self, directory: str | Path) -> ExitStatus:
        """Report unpinned references; nonzero iff any were found."""
        found = self.violations(directory)
        if not found:
            self._say(f"✅ All workflow references in {directory} are pinned")
            return ExitStatus.OK

        self._say(f"❌ {len(found)} unpinned workflow reference(s):")
        for ref in found:
            print(f"   {ref.describe()}")
        return ExitStatus.VIOLATIONS

    # ── autopin ────────────────────────────────────────────────

    def autopin(self, directory: str | Path, actions: bool = True, images: bool = True) -> ExitStatus:
        """Rewrite floating references of the selected kinds in place.

        Returns:
            REMEDIATED if references were rewritten and none of the selected
            kinds remain unpinned, OK if nothing needed pinning, VIOLATIONS
            if anything selected is still unpinned afterwards.
        """
        decisions = self.pin_directory(directory, actions=actions, images=images)
        rewritten = [d for d in decisions if d.resolved]
        remaining = [d for d in decisions if not d.resolved]

        for decision in remaining:
            print(f"   {decision.reference.describe()} ({decision.error})")

        if remaining:
            self._say(f"❌ {len(remaining)} reference(s) could not be pinned, {len(rewritten)} pinned")
            return ExitStatus.VIOLATIONS
        if rewritten:
            self._say(f"📌 Pinned {len(rewritten)} reference(s); review and commit the changes")
            return ExitStatus.REMEDIATED
        self._say("✅ Nothing to pin")
        return ExitStatus.OK

    def pin_directory(self, directory: str | Path, actions: bool = True, images: bool = True) -> list[PinDecision]:
        decisions: list[PinDecision] = []
        for path in workflow_files(directory):
            decisions.extend(self.pin_file(path, actions=actions, images=images))
        return decisions

    def pin_file(self, path: str | Path, actions: bool = True, images: bool = True) -> list[PinDecision]:
        """Pin the selected floating references of one file.

        The file is replaced atomically, and only when at least one line
        changed. Lines that are not rewritten are preserved byte for byte.
        """
        file_path = Path(path)
        text = read_workflow(file_path)
        lines = text.splitlines(keepends=True)

        decisions: list[PinDecision] = []
        changed = False
        for site in extract_sites(text, str(file_path)):
            ref = site.reference
            if not _selected(ref.kind, actions, images) or not ref.pin_status.is_violation:
                continue

            decision = self._pin_site(site)
            decisions.append(decision)
            if not decision.resolved:
                logger.info("Could not pin %s: %s", ref.describe(), decision.error)
                continue

            idx = ref.line_number - 1
            lines[idx] = _rewrite_line(lines[idx], site, decision.rewritten_value, _tag_of(ref))
            changed = True

        if changed:
            replace_file(file_path, "".join(lines))
            logger.info("Rewrote %s", file_path)
        return decisions

    def _pin_site(self, site: ReferenceSite) -> PinDecision:
        ref = site.reference
        if ref.pin_status is PinStatus.MALFORMED:
            return PinDecision(reference=ref, error="malformed reference")
        if site.scalar is None:
            return PinDecision(reference=ref, error="flow mapping, pin manually")
        try:
            return PinDecision(reference=ref, rewritten_value=self._pinned_value(ref))
        except ResolutionError as e:
            return PinDecision(reference=ref, error=str(e))

    def _pinned_value(self, ref: WorkflowReference) -> str:
        value = ref.raw_value
        if ref.kind is ReferenceKind.ACTION and not value.startswith("docker://"):
            repository, subpath, tag = split_action(value)
            sha = self.resolver.resolve_action(repository, tag)
            target = f"{repository}/{subpath}" if subpath else repository
            return f"{target}@{sha}"

        image = value.split("@", 1)[0]
        return f"{image}@{self.resolver.resolve_image(image)}"


def _selected(kind: ReferenceKind, actions: bool, images: bool) -> bool:
    return images if kind.is_image else actions


def _tag_of(ref: WorkflowReference) -> str:
    if ref.kind is ReferenceKind.ACTION and not ref.raw_value.startswith("docker://"):
        return ref.raw_value.rsplit("@", 1)[1]
    return ImageName.parse(ref.raw_value).tag


def _rewrite_line(line: str, site: ReferenceSite, new_value: str, tag: str) -> str:
    """Swap the scalar for ``new_value`` and record the old tag in a comment.

    The quote style is kept. An existing trailing comment other than the
    tag itself is kept after the tag comment.
    """
    scalar = site.scalar
    body = line.rstrip("\r\n")
    newline = line[len(body) :]
    replacement = f"{scalar.quote}{new_value}{scalar.quote} # {tag}"
    if scalar.comment and scalar.comment != tag:
        replacement += f" # {scalar.comment}"
    return body[: scalar.start] + replacement + newline
