"""Staged git diff parser for pushgate."""

from __future__ import annotations

import re

from pushgate.models import DiffFile

# Regex patterns for parsing unified diff format. git wraps a path in double
# quotes, with C-style escapes, when it contains special characters.
_QUOTED = r'"(?:[^"\\]|\\.)*"'
_DIFF_HEADER = re.compile(rf'^diff --git (?:{_QUOTED}|a/.*) (?P<new>"b/(?:[^"\\]|\\.)*"|b/.*)$')
_NEW_FILE = re.compile(r"^new file mode")
_DELETED_FILE = re.compile(r"^deleted file mode")
_RENAME_FROM = re.compile(r"^rename from (.*)")
_RENAME_TO = re.compile(r"^rename to (.*)")
_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")
_OCTAL = re.compile(r"[0-3][0-7]{2}")

_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def unquote_path(path: str) -> str:
    """Undo git's C-style path quoting; unquoted paths are returned as is.

    Octal escapes are raw bytes of the UTF-8 encoded name.
    """
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path

    body = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 == len(body):
            out += ch.encode("utf-8")
            i += 1
            continue
        octal = _OCTAL.match(body, i + 1)
        if octal:
            out.append(int(octal.group(), 8))
            i += 4
            continue
        escaped = body[i + 1]
        if escaped in _ESCAPES:
            out.append(_ESCAPES[escaped])
        else:
            out += escaped.encode("utf-8")
        i += 2
    return out.decode("utf-8", errors="replace")


def _new_path(header: re.Match) -> str:
    # Strip the "b/" prefix, inside the quotes when quoted
    new = header.group("new")
    if new.startswith('"'):
        return unquote_path('"' + new[3:])
    return new[2:]


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse unified diff text into a list of DiffFile objects.

    Only added lines are kept: removed and context lines can never introduce
    a secret into the pushed tree.

    Args:
        diff_text: Raw output from `git diff --cached` (any context size).

    Returns:
        A list of DiffFile objects with their added lines and line numbers.
    """
    files: list[DiffFile] = []
    current_file: DiffFile | None = None
    in_hunk = False
    current_line_no = 0

    for raw_line in diff_text.splitlines():
        header_match = _DIFF_HEADER.match(raw_line)
        if header_match:
            current_file = DiffFile(path=_new_path(header_match))
            files.append(current_file)
            in_hunk = False
            continue

        if current_file is None:
            continue

        if not in_hunk:
            if _NEW_FILE.match(raw_line):
                current_file.is_new = True
                continue
            if _DELETED_FILE.match(raw_line):
                current_file.is_deleted = True
                continue
            rename_from = _RENAME_FROM.match(raw_line)
            if rename_from:
                current_file.old_path = unquote_path(rename_from.group(1))
                continue
            rename_to = _RENAME_TO.match(raw_line)
            if rename_to:
                current_file.path = unquote_path(rename_to.group(1))
                continue

        hunk_match = _HUNK_HEADER.match(raw_line)
        if hunk_match:
            in_hunk = True
            current_line_no = int(hunk_match.group(1))
            continue

        if not in_hunk:
            continue

        if raw_line.startswith("+"):
            current_file.added_lines.append((current_line_no, raw_line[1:]))
            current_line_no += 1
        elif raw_line.startswith(" "):
            current_line_no += 1
        # Removed lines and "\ No newline at end of file" do not advance
        # the new-file line counter.

    return files
