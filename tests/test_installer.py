"""Tests for the install command."""

import os
import subprocess
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from pushgate.errors import InstallError
from pushgate.installer import (
    _build_dispatcher,
    _build_pre_push_hook,
    install,
    install_command,
    uninstall,
    uninstall_command,
)
from pushgate.models import ExitStatus


@pytest.fixture
def repo(tmp_path):
    """A fake repository whose default hooks dir is .git/hooks."""
    (tmp_path / ".git" / "hooks").mkdir(parents=True)
    with patch("pushgate.installer._hooks_dir", return_value=tmp_path / ".git" / "hooks"):
        yield tmp_path


class _FakeGit:
    """Stands in for installer._git, recording calls and holding git config values."""

    def __init__(self, hooks_path=None, fail_on_set=False, fail_on_unset=False):
        self.values = {"core.hooksPath": hooks_path} if hooks_path else {}
        self.fail_on_set = fail_on_set
        self.fail_on_unset = fail_on_unset
        self.calls = []

    @property
    def hooks_path(self):
        return self.values.get("core.hooksPath")

    def __call__(self, args, root, check=True):
        self.calls.append(args)
        if args[:2] == ["rev-parse", "--git-path"]:
            return subprocess.CompletedProcess(args, 0, stdout=".git/hooks\n", stderr="")
        if args[:2] == ["config", "--get"]:
            value = self.values.get(args[2])
            return subprocess.CompletedProcess(args, 0 if value else 1, stdout=value or "", stderr="")
        if args[:2] == ["config", "--unset"]:
            if self.fail_on_unset and check:
                raise InstallError("git config failed: could not lock config file")
            self.values.pop(args[2], None)
        elif args[0] == "config":
            if self.fail_on_set:
                raise InstallError("git config failed: could not lock config file")
            self.values[args[1]] = args[2]
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")


class TestTemplates:
    def test_hook_runs_pushgate(self):
        hook = _build_pre_push_hook("/usr/bin/python3")
        assert hook.startswith("#!/bin/sh\n")
        assert 'exec "/usr/bin/python3" -m pushgate hook "$@"' in hook

    def test_dispatcher_runs_hook_directory(self):
        dispatcher = _build_dispatcher()
        assert "pre-push.d" in dispatcher
        assert "exit $status" in dispatcher
        assert "*.backup.*) continue" in dispatcher


class TestLegacyInstall:
    def test_writes_config_allowlist_and_hook(self, repo):
        assert install(repo) == ExitStatus.OK
        assert (repo / ".security-controls" / "config.yml").exists()
        assert (repo / ".security-controls" / "secret-allowlist.txt").exists()
        hook = repo / ".git" / "hooks" / "pre-push"
        assert "-m pushgate hook" in hook.read_text()
        assert os.access(hook, os.X_OK)

    def test_keeps_existing_control_files(self, repo):
        config = repo / ".security-controls" / "config.yml"
        config.parent.mkdir()
        config.write_text("secret_scan:\n  mode: full\n")
        assert install(repo) == ExitStatus.OK
        assert config.read_text() == "secret_scan:\n  mode: full\n"

    def test_reinstall_is_a_no_op_for_same_hook(self, repo):
        assert install(repo) == ExitStatus.OK
        assert install(repo) == ExitStatus.OK
        assert list((repo / ".git" / "hooks").glob("pre-push.backup.*")) == []

    def test_foreign_hook_requires_force(self, repo, capsys):
        hook = repo / ".git" / "hooks" / "pre-push"
        hook.write_text("#!/bin/sh\necho custom\n")
        assert install(repo) == ExitStatus.PERMISSION_ERROR
        assert "--force" in capsys.readouterr().err
        assert hook.read_text() == "#!/bin/sh\necho custom\n"
        assert not (repo / ".security-controls").exists()

    def test_force_replaces_hook(self, repo):
        hook = repo / ".git" / "hooks" / "pre-push"
        hook.write_text("#!/bin/sh\necho custom\n")
        assert install(repo, force=True) == ExitStatus.OK
        assert "-m pushgate hook" in hook.read_text()

    def test_dry_run_writes_nothing(self, repo, capsys):
        assert install(repo, dry_run=True) == ExitStatus.OK
        assert not (repo / ".security-controls").exists()
        assert not (repo / ".git" / "hooks" / "pre-push").exists()
        assert "Would write" in capsys.readouterr().out


class TestRollbackOnFailure:
    def test_failure_after_writes_rolls_everything_back(self, repo):
        with patch("pushgate.transaction.Transaction.make_executable", side_effect=OSError("permission denied")):
            status = install(repo)
        assert status == ExitStatus.PERMISSION_ERROR
        assert not (repo / ".security-controls").exists()
        assert not (repo / ".git" / "hooks" / "pre-push").exists()

    def test_replaced_hook_restored_on_failure(self, repo):
        hook = repo / ".git" / "hooks" / "pre-push"
        hook.write_text("#!/bin/sh\necho custom\n")
        with patch("pushgate.transaction.Transaction.make_executable", side_effect=OSError("permission denied")):
            status = install(repo, force=True)
        assert status != ExitStatus.OK
        assert hook.read_text() == "#!/bin/sh\necho custom\n"


class TestHooksPathInstall:
    def test_dispatcher_and_security_hook(self, tmp_path):
        fake_git = _FakeGit()
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
        dispatcher = tmp_path / ".githooks" / "pre-push"
        security = tmp_path / ".githooks" / "pre-push.d" / "50-security-pre-push"
        assert "pre-push.d" in dispatcher.read_text()
        assert "-m pushgate hook" in security.read_text()
        assert os.access(dispatcher, os.X_OK)
        assert os.access(security, os.X_OK)
        assert fake_git.hooks_path == ".githooks"

    def test_keeps_existing_dispatcher(self, tmp_path):
        dispatcher = tmp_path / ".githooks" / "pre-push"
        dispatcher.parent.mkdir()
        dispatcher.write_text("#!/bin/sh\n# team dispatcher\n")
        with patch("pushgate.installer._git", _FakeGit()):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
        assert dispatcher.read_text() == "#!/bin/sh\n# team dispatcher\n"

    def test_git_config_failure_rolls_back(self, tmp_path):
        fake_git = _FakeGit(hooks_path="old-hooks", fail_on_set=True)
        with patch("pushgate.installer._git", fake_git):
            status = install(tmp_path, hooks_path=".githooks")
        assert status == ExitStatus.PERMISSION_ERROR
        assert not (tmp_path / ".githooks").exists()
        assert not (tmp_path / ".security-controls").exists()
        assert fake_git.hooks_path == "old-hooks"


class TestInstallCommand:
    def test_returns_exit_code(self, repo, capsys):
        args = SimpleNamespace(path=str(repo), hooks_path=None, force=False, dry_run=False)
        assert install_command(args) == 0
        assert "Next steps" in capsys.readouterr().out


class TestHooksPathInstallRecordsPrevious:
    def test_previous_hooks_path_remembered(self, tmp_path):
        fake_git = _FakeGit(hooks_path="old-hooks")
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
        assert fake_git.values == {"core.hooksPath": ".githooks", "pushgate.previousHooksPath": "old-hooks"}

    def test_reinstall_does_not_remember_itself(self, tmp_path):
        fake_git = _FakeGit(hooks_path=".githooks")
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
        assert "pushgate.previousHooksPath" not in fake_git.values


class TestLegacyUninstall:
    def test_removes_hook_and_control_files(self, repo):
        assert install(repo) == ExitStatus.OK
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo) == ExitStatus.OK
        assert not (repo / ".git" / "hooks" / "pre-push").exists()
        assert not (repo / ".security-controls").exists()

    def test_foreign_hook_is_left_alone(self, repo, capsys):
        hook = repo / ".git" / "hooks" / "pre-push"
        hook.write_text("#!/bin/sh\necho custom\n")
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo) == ExitStatus.OK
        assert hook.read_text() == "#!/bin/sh\necho custom\n"
        assert "not installed by pushgate" in capsys.readouterr().out

    def test_restores_hook_replaced_with_force(self, repo):
        hook = repo / ".git" / "hooks" / "pre-push"
        hook.write_text("#!/bin/sh\necho custom\n")
        assert install(repo, force=True) == ExitStatus.OK
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo) == ExitStatus.OK
        assert hook.read_text() == "#!/bin/sh\necho custom\n"
        assert list(hook.parent.glob("pre-push.backup.*")) == []

    def test_keep_config(self, repo):
        assert install(repo) == ExitStatus.OK
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo, keep_config=True) == ExitStatus.OK
        assert not (repo / ".git" / "hooks" / "pre-push").exists()
        assert (repo / ".security-controls" / "config.yml").exists()
        assert (repo / ".security-controls" / "secret-allowlist.txt").exists()

    def test_user_files_keep_control_directory(self, repo):
        assert install(repo) == ExitStatus.OK
        notes = repo / ".security-controls" / "NOTES.md"
        notes.write_text("team notes\n")
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo) == ExitStatus.OK
        assert notes.exists()
        assert not (repo / ".security-controls" / "config.yml").exists()

    def test_dry_run_removes_nothing(self, repo, capsys):
        assert install(repo) == ExitStatus.OK
        capsys.readouterr()
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo, dry_run=True) == ExitStatus.OK
        assert (repo / ".git" / "hooks" / "pre-push").exists()
        assert (repo / ".security-controls" / "config.yml").exists()
        assert "Would remove" in capsys.readouterr().out

    def test_nothing_installed(self, repo, capsys):
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall(repo) == ExitStatus.OK
        assert "Nothing to uninstall" in capsys.readouterr().out

    def test_failure_restores_removed_files(self, repo):
        assert install(repo) == ExitStatus.OK
        hook = repo / ".git" / "hooks" / "pre-push"
        content = hook.read_text()
        with patch("pushgate.installer._git", _FakeGit()), patch(
            "pushgate.transaction.Transaction.remove_dir", side_effect=OSError("permission denied")
        ):
            assert uninstall(repo) == ExitStatus.PERMISSION_ERROR
        assert hook.read_text() == content
        assert os.access(hook, os.X_OK)
        assert (repo / ".security-controls" / "config.yml").exists()


class TestHooksPathUninstall:
    def test_removes_dispatcher_and_unsets_hooks_path(self, tmp_path):
        fake_git = _FakeGit()
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
            assert uninstall(tmp_path) == ExitStatus.OK
        assert not (tmp_path / ".githooks").exists()
        assert fake_git.values == {}

    def test_removes_stale_security_hook_backups(self, tmp_path):
        fake_git = _FakeGit()
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
            stale = tmp_path / ".githooks" / "pre-push.d" / "50-security-pre-push.backup.1700000000"
            stale.write_text("#!/bin/sh\nexit 0\n")
            assert uninstall(tmp_path) == ExitStatus.OK
        assert not (tmp_path / ".githooks").exists()
        assert fake_git.hooks_path is None

    def test_restores_previous_hooks_path(self, tmp_path):
        fake_git = _FakeGit(hooks_path="old-hooks")
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
            assert uninstall(tmp_path) == ExitStatus.OK
        assert fake_git.values == {"core.hooksPath": "old-hooks"}

    def test_other_dispatch_hooks_keep_dispatcher(self, tmp_path):
        fake_git = _FakeGit()
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
            lint = tmp_path / ".githooks" / "pre-push.d" / "10-lint"
            lint.write_text("#!/bin/sh\nexit 0\n")
            assert uninstall(tmp_path) == ExitStatus.OK
        assert lint.exists()
        assert (tmp_path / ".githooks" / "pre-push").exists()
        assert not (tmp_path / ".githooks" / "pre-push.d" / "50-security-pre-push").exists()
        assert fake_git.hooks_path == ".githooks"

    def test_git_config_failure_rolls_back(self, tmp_path):
        fake_git = _FakeGit()
        with patch("pushgate.installer._git", fake_git):
            assert install(tmp_path, hooks_path=".githooks") == ExitStatus.OK
            fake_git.fail_on_unset = True
            assert uninstall(tmp_path) == ExitStatus.PERMISSION_ERROR
        security = tmp_path / ".githooks" / "pre-push.d" / "50-security-pre-push"
        assert "-m pushgate hook" in security.read_text()
        assert os.access(security, os.X_OK)
        assert (tmp_path / ".githooks" / "pre-push").exists()
        assert (tmp_path / ".security-controls" / "config.yml").exists()
        assert fake_git.hooks_path == ".githooks"


class TestUninstallCommand:
    def test_returns_exit_code(self, repo, capsys):
        assert install(repo) == ExitStatus.OK
        args = SimpleNamespace(path=str(repo), keep_config=False, dry_run=False)
        with patch("pushgate.installer._git", _FakeGit()):
            assert uninstall_command(args) == 0
        assert "pushgate uninstalled" in capsys.readouterr().out
