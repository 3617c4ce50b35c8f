"""Secret signature catalog and project-local allowlist.

Patterns are ordered: the scanner reports the first pattern that matches a
line, so specific provider signatures come before the generic assignment
heuristic. Every pattern exposes the secret value either through a named
group ``secret`` or as the whole match; redaction replaces exactly that span.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from pushgate.errors import ConfigError
from pushgate.models import PatternCategory

REDACTED = "***REDACTED***"

# Values that are documentation placeholders, never live credentials
_PLACEHOLDER = re.compile(
    r"""(?i)example|your[_-]|changeme|change[_-]me|replace|placeholder|dummy|redacted|xxxxxx|<|\$\{|\{\{"""
)

_ENTROPY_THRESHOLD = 3.0
_MIN_GENERIC_VALUE_LENGTH = 16


def shannon_entropy(data: str) -> float:
    """Calculate Shannon entropy of a string."""
    if not data:
        return 0.0
    counts = Counter(data)
    length = len(data)
    entropy = 0.0
    for count in counts.values():
        prob = count / length
        entropy -= prob * math.log2(prob)
    return entropy


def is_placeholder(value: str) -> bool:
    return bool(_PLACEHOLDER.search(value))


def _high_entropy(value: str) -> bool:
    return len(value) >= _MIN_GENERIC_VALUE_LENGTH and shannon_entropy(value) >= _ENTROPY_THRESHOLD


@dataclass(frozen=True)
class SecretPattern:
    """One secret signature."""

    id: str
    regex: re.Pattern
    category: PatternCategory
    applies_to_lockfiles: bool = True
    predicate: Callable[[str], bool] | None = None

    def spans(self, line: str) -> Iterator[tuple[int, int]]:
        """Yield the (start, end) span of every secret value in ``line``."""
        for m in self.regex.finditer(line):
            if "secret" in self.regex.groupindex and m.group("secret") is not None:
                start, end = m.span("secret")
            else:
                start, end = m.span()
            value = line[start:end]
            if is_placeholder(value):
                continue
            if self.predicate is not None and not self.predicate(value):
                continue
            yield start, end

    def match(self, line: str) -> tuple[int, int] | None:
        return next(self.spans(line), None)


@dataclass(frozen=True)
class AllowlistRule:
    """A regex exempting matching lines from every pattern."""

    regex: re.Pattern

    def matches(self, line: str) -> bool:
        return bool(self.regex.search(line))


SECRET_PATTERNS: tuple[SecretPattern, ...] = (
    SecretPattern(
        "aws-secret-access-key",
        re.compile(
            r"""(?i)aws_?secret_?(?:access_?)?key["']?\s*[:=]\s*["']?(?P<secret>[A-Za-z0-9/+=]{40,})"""
        ),
        PatternCategory.CLOUD,
    ),
    SecretPattern(
        "aws-access-key-id",
        re.compile(r"""\b(?:A3T[A-Z0-9]|AKIA|ASIA|ABIA|ACCA)[A-Z0-9]{16}\b"""),
        PatternCategory.CLOUD,
    ),
    SecretPattern(
        "gcp-api-key",
        re.compile(r"""\bAIza[0-9A-Za-z_\-]{35}"""),
        PatternCategory.CLOUD,
    ),
    SecretPattern(
        "github-token",
        re.compile(r"""\b(?:ghp|gho|ghu|ghr|ghs)_[0-9A-Za-z]{36,}"""),
        PatternCategory.FORGE,
    ),
    SecretPattern(
        "github-fine-grained-pat",
        re.compile(r"""\b(?:github|ghcr)_pat_[0-9A-Za-z_]{22,}"""),
        PatternCategory.FORGE,
    ),
    SecretPattern(
        "gitlab-token",
        re.compile(r"""\bglpat-[0-9A-Za-z_\-]{20,}"""),
        PatternCategory.FORGE,
    ),
    SecretPattern(
        "slack-webhook",
        re.compile(
            r"""https://hooks\.slack\.com/services/(?P<secret>T[0-9A-Za-z]+/B[0-9A-Za-z]+/[0-9A-Za-z]+)"""
        ),
        PatternCategory.WEBHOOK,
    ),
    SecretPattern(
        "slack-token",
        re.compile(r"""\bxox[baprsuonv]-[0-9A-Za-z-]{10,}"""),
        PatternCategory.WEBHOOK,
    ),
    SecretPattern(
        "stripe-live-key",
        re.compile(r"""\b(?:sk|rk)_live_[0-9A-Za-z]{20,}"""),
        PatternCategory.PLATFORM,
    ),
    SecretPattern(
        "openai-api-key",
        re.compile(r"""\bsk-(?:proj-[A-Za-z0-9_\-]{20,}|[A-Za-z0-9]{20,})"""),
        PatternCategory.PLATFORM,
    ),
    SecretPattern(
        "npm-token",
        re.compile(r"""\bnpm_[A-Za-z0-9]{36}"""),
        PatternCategory.PLATFORM,
    ),
    SecretPattern(
        "docker-pat",
        re.compile(r"""\bdckr_pat_[A-Za-z0-9_\-]{20,}"""),
        PatternCategory.PLATFORM,
    ),
    SecretPattern(
        "private-key",
        re.compile(r"""-----BEGIN[ A-Z0-9_-]{0,100}PRIVATE KEY(?: BLOCK)?-----"""),
        PatternCategory.PRIVATE_KEY,
    ),
    SecretPattern(
        "jwt",
        re.compile(r"""\beyJ[A-Za-z0-9_\-+/=]{10,}\.eyJ[A-Za-z0-9_\-+/=]{10,}\.[A-Za-z0-9_\-+/=]{10,}"""),
        PatternCategory.BEARER,
    ),
    SecretPattern(
        "bearer-token",
        re.compile(r"""(?i)\bbearer\s+(?P<secret>[A-Za-z0-9\-._~+/]{20,}=*)"""),
        PatternCategory.BEARER,
    ),
    SecretPattern(
        "database-url",
        re.compile(
            r"""(?i)\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|redis|amqps?)://[^\s:/@]+:(?P<secret>[^\s@/]{4,})@"""
        ),
        PatternCategory.CONNECTION_STRING,
    ),
    SecretPattern(
        "generic-secret-assignment",
        re.compile(
            r"""(?i)[\w.-]*(?:secret|passw(?:or)?d|pwd|token|api[_-]?key|access[_-]?key|private[_-]?key|credential)s?[\w-]*["']?\s*[:=]\s*["']?(?P<secret>[A-Za-z0-9/+=_\-]{16,})"""
        ),
        PatternCategory.GENERIC,
        applies_to_lockfiles=False,
        predicate=_high_entropy,
    ),
)


def redact(line: str, spans: Iterable[tuple[int, int]]) -> str:
    """Replace each span with the redaction marker, merging overlaps."""
    merged: list[list[int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    for start, end in reversed(merged):
        line = line[:start] + REDACTED + line[end:]
    return line


def load_allowlist(path: str | Path) -> list[AllowlistRule]:
    """Read the allowlist file: one regex per line, ``#`` comments ignored.

    A missing file means an empty allowlist.

    Raises:
        ConfigError: If a line is not a valid regular expression.
    """
    allowlist_path = Path(path)
    if not allowlist_path.exists():
        return []

    rules: list[AllowlistRule] = []
    try:
        content = allowlist_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read allowlist {allowlist_path}: {e}") from e

    for line_no, raw in enumerate(content.splitlines(), start=1):
        entry = raw.strip()
        if not entry or entry.startswith("#"):
            continue
        try:
            rules.append(AllowlistRule(re.compile(entry)))
        except re.error as e:
            raise ConfigError(f"{allowlist_path}:{line_no}: invalid allowlist regex {entry!r}: {e}") from e
    return rules
