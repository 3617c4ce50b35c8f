"""Tests for scan target sources."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from pushgate.errors import SourceError
from pushgate.models import ScanMode
from pushgate.scanner import SecretScanner
from pushgate.sources import full_targets, get_staged_diff, staged_targets

_DIFF = """\
diff --git a/app.py b/app.py
index 1111111..2222222 100644
--- a/app.py
+++ b/app.py
@@ -3,0 +4,2 @@
+first = 1
+second = 2
diff --git a/node_modules/x/index.js b/node_modules/x/index.js
new file mode 100644
--- /dev/null
+++ b/node_modules/x/index.js
@@ -0,0 +1 @@
+module.exports = 1
"""


AWS_SECRET = "wJalrXUtnFEMIK7MDENGbPxRfiCYzKEYabcdef12"

_LATIN1_DIFF = (
    b"diff --git a/notes.txt b/notes.txt\n"
    b"--- a/notes.txt\n"
    b"+++ b/notes.txt\n"
    b"@@ -1,0 +2,2 @@\n"
    b"+caf\xe9 au lait\n"
    b'+AWS_SECRET_ACCESS_KEY="' + AWS_SECRET.encode() + b'"\n'
)

_RENAME_DIFF = f"""\
diff --git a/settings.py b/config/settings.py
similarity index 80%
rename from settings.py
rename to config/settings.py
--- a/settings.py
+++ b/config/settings.py
@@ -3,0 +4 @@
+AWS_SECRET_ACCESS_KEY = "{AWS_SECRET}"
"""


class TestGetStagedDiff:
    def test_runs_cached_diff(self, tmp_path):
        mock_result = MagicMock(stdout=b"diff text")
        with patch("pushgate.sources.subprocess.run", return_value=mock_result) as mock_run:
            assert get_staged_diff(tmp_path) == "diff text"
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["git", "-c", "core.quotePath=false"]
        assert cmd[3:5] == ["diff", "--cached"]
        assert "--diff-filter=ACMR" in cmd
        assert "--unified=0" in cmd
        assert "text" not in mock_run.call_args[1]

    def test_undecodable_bytes_are_replaced(self, tmp_path):
        with patch("pushgate.sources.subprocess.run", return_value=MagicMock(stdout=_LATIN1_DIFF)):
            diff = get_staged_diff(tmp_path)
        assert "caf� au lait" in diff
        assert AWS_SECRET in diff

    def test_git_failure_is_source_error(self, tmp_path):
        err = subprocess.CalledProcessError(128, "git", stderr=b"fatal: not a git repository\n")
        with patch("pushgate.sources.subprocess.run", side_effect=err):
            with pytest.raises(SourceError, match="not a git repository"):
                get_staged_diff(tmp_path)

    def test_git_missing_is_source_error(self, tmp_path):
        with patch("pushgate.sources.subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(SourceError, match="not installed"):
                get_staged_diff(tmp_path)


class TestStagedTargets:
    def test_yields_added_lines_of_included_files(self, config, tmp_path):
        targets = list(staged_targets(config, tmp_path, _DIFF))
        assert [(t.file, t.line_number, t.line) for t in targets] == [
            ("app.py", 4, "first = 1"),
            ("app.py", 5, "second = 2"),
        ]
        assert all(t.origin == ScanMode.STAGED for t in targets)

    def test_renamed_file_with_added_secret(self, config, tmp_path):
        targets = list(staged_targets(config, tmp_path, _RENAME_DIFF))
        assert [(t.file, t.line_number) for t in targets] == [("config/settings.py", 4)]

    def test_latin1_staged_change_is_still_scanned(self, config, tmp_path):
        with patch("pushgate.sources.subprocess.run", return_value=MagicMock(stdout=_LATIN1_DIFF)):
            report = SecretScanner(config, tmp_path).scan(ScanMode.STAGED)
        assert [(f.file, f.line_number) for f in report.findings] == [("notes.txt", 3)]


class TestFullTargets:
    def test_uses_git_ls_files(self, config, tmp_path):
        (tmp_path / "tracked.txt").write_text("one\ntwo\n")
        (tmp_path / "untracked.txt").write_text("three\n")
        with patch("pushgate.sources._git", return_value="tracked.txt\0"):
            targets = list(full_targets(config, tmp_path))
        assert [(t.file, t.line) for t in targets] == [("tracked.txt", "one"), ("tracked.txt", "two")]
        assert all(t.origin == ScanMode.FULL for t in targets)

    def test_falls_back_to_directory_walk(self, config, tmp_path):
        (tmp_path / "a.txt").write_text("alpha\n")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("[core]\n")
        with patch("pushgate.sources._git", side_effect=SourceError("no git")):
            files = {t.file for t in full_targets(config, tmp_path)}
        assert files == {"a.txt"}

    def test_skips_binary_and_excluded_files(self, config, tmp_path):
        (tmp_path / "image.png").write_bytes(b"\x89PNG\x00\x00data")
        (tmp_path / "build").mkdir()
        (tmp_path / "build" / "out.txt").write_text("generated\n")
        (tmp_path / "ok.txt").write_text("fine\n")
        with patch("pushgate.sources._git", return_value="image.png\0build/out.txt\0ok.txt\0"):
            files = {t.file for t in full_targets(config, tmp_path)}
        assert files == {"ok.txt"}

    def test_skips_tracked_but_deleted_files(self, config, tmp_path):
        with patch("pushgate.sources._git", return_value="gone.txt\0"):
            assert list(full_targets(config, tmp_path)) == []

    def test_non_ascii_tracked_path(self, config, tmp_path):
        (tmp_path / "café.env").write_text("TOKEN=abc\n", encoding="utf-8")
        mock_result = MagicMock(stdout="café.env\0".encode("utf-8"))
        with patch("pushgate.sources.subprocess.run", return_value=mock_result) as mock_run:
            targets = list(full_targets(config, tmp_path))
        assert [(t.file, t.line) for t in targets] == [("café.env", "TOKEN=abc")]
        cmd = mock_run.call_args[0][0]
        assert cmd[1:3] == ["-c", "core.quotePath=false"]
        assert cmd[3:] == ["ls-files", "-z"]
