"""pushgate install and uninstall commands: control files and the pre-push hook."""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import Callable

from pushgate.config import DEFAULT_ALLOWLIST_PATH, DEFAULT_CONFIG_PATH
from pushgate.errors import InstallError, PushGateError
from pushgate.models import ExitStatus
from pushgate.transaction import Transaction

logger = logging.getLogger(__name__)

HOOK_NAME = "pre-push"
DISPATCH_DIR = "pre-push.d"
SECURITY_HOOK_NAME = "50-security-pre-push"
HOOK_MARKER = "(generated by `pushgate install`)"
PREVIOUS_HOOKS_PATH_KEY = "pushgate.previousHooksPath"

# ---------------------------------------------------------------------------
# Template builders
# ---------------------------------------------------------------------------


def _build_config_yml() -> str:
    return """\
# .security-controls/config.yml: pushgate configuration
#
# Every gate runs on `git push`; any failing gate blocks the push.
gates:
  secrets:     { enabled: true }
  pinning:     { enabled: true }
  large_files: { enabled: true }

# Regexes in this file exempt matching lines from secret detection
allowlist: .security-controls/secret-allowlist.txt

secret_scan:
  # staged: added lines of the staged change set | full: all tracked files
  mode: staged
  excluded_paths:
    - target/
    - node_modules/
    - dist/
    - build/
    - vendor/
    - coverage/
    - .git/
  # Lock files are exempt from generic key=value heuristics
  lockfiles:
    - "*.lock"
    - package-lock.json
    - pnpm-lock.yaml
    - npm-shrinkwrap.json
    - go.sum

pinning:
  workflows_dir: .github/workflows
  # Rewrite floating tags to commit SHAs / digests during the hook
  autopin: true

large_files:
  max_mb: 10
"""


def _build_allowlist() -> str:
    return """\
# .security-controls/secret-allowlist.txt
#
# One regular expression per line. A line matching any entry is never
# reported by the secret scanner. Blank lines and lines starting with #
# are ignored.
#
# Examples:
# ^\\s*#.*example
# test_fixture_token_[0-9]+
"""


def _build_pre_push_hook(python: str | None = None) -> str:
    interpreter = python or sys.executable
    return f"""\
#!/bin/sh
# pushgate pre-push hook {HOOK_MARKER}
exec "{interpreter}" -m pushgate hook "$@"
"""


def _build_dispatcher() -> str:
    return f"""\
#!/bin/sh
# pre-push dispatcher {HOOK_MARKER}
# Runs every executable in {DISPATCH_DIR}/ in order; any failure blocks the push.
hook_dir="$(dirname "$0")/{DISPATCH_DIR}"
input="$(cat)"
status=0
for hook in "$hook_dir"/*; do
  case "$hook" in *.backup.*) continue ;; esac
  [ -f "$hook" ] && [ -x "$hook" ] || continue
  printf '%s\\n' "$input" | "$hook" "$@" || status=1
done
exit $status
"""


# ---------------------------------------------------------------------------
# git helpers
# ---------------------------------------------------------------------------


def _git(args: list[str], root: Path, check: bool = True) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(["git", *args], capture_output=True, text=True, check=check, cwd=root)
    except subprocess.CalledProcessError as e:
        raise InstallError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e
    except FileNotFoundError as e:
        raise InstallError("git is not installed or not in PATH") from e


def _hooks_dir(root: Path) -> Path:
    """Return the repository's default hooks directory."""
    out = _git(["rev-parse", "--git-path", "hooks"], root).stdout.strip()
    path = Path(out)
    return path if path.is_absolute() else root / path


def _git_config_get(root: Path, key: str) -> str | None:
    result = _git(["config", "--get", key], root, check=False)
    value = result.stdout.strip()
    return value if result.returncode == 0 and value else None


def _current_hooks_path(root: Path) -> str | None:
    return _git_config_get(root, "core.hooksPath")


# ---------------------------------------------------------------------------
# Install plan
# ---------------------------------------------------------------------------


def _plan(root: Path, hooks_path: str | None, force: bool) -> list[tuple[Path, str, bool]]:
    """List (path, content, executable) for every file that must be written.

    Raises:
        InstallError: If a foreign hook is in the way and ``force`` is off.
    """
    planned: list[tuple[Path, str, bool]] = []
    for rel, content in ((DEFAULT_CONFIG_PATH, _build_config_yml()), (DEFAULT_ALLOWLIST_PATH, _build_allowlist())):
        path = root / rel
        if path.exists():
            print(f"  Keeping existing {rel}")
        else:
            planned.append((path, content, False))

    hook_content = _build_pre_push_hook()
    if hooks_path:
        hook_dir = root / hooks_path
        dispatcher = hook_dir / HOOK_NAME
        if not dispatcher.exists() or (force and _read(dispatcher) != _build_dispatcher()):
            planned.append((dispatcher, _build_dispatcher(), True))
        else:
            print(f"  Keeping existing dispatcher {dispatcher}")
        hook = hook_dir / DISPATCH_DIR / SECURITY_HOOK_NAME
    else:
        hook = _hooks_dir(root) / HOOK_NAME

    if hook.exists() and _read(hook) == hook_content:
        print(f"  Keeping existing {hook}")
    elif hook.exists() and not force:
        raise InstallError(f"{hook} already exists; re-run with --force to replace it")
    else:
        planned.append((hook, hook_content, True))
    return planned


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def install(
    root: str | Path = ".",
    hooks_path: str | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> ExitStatus:
    """Install control files and the pre-push hook in one transaction.

    Args:
        root: Repository root.
        hooks_path: Directory for dispatcher mode, relative to ``root``. When
            set, ``core.hooksPath`` is pointed at it.
        force: Replace an existing, different pre-push hook.
        dry_run: Print the plan without touching the filesystem.

    Returns:
        OK on success; on failure every earlier write has been rolled back
        and the failing error's exit status is returned.
    """
    root_path = Path(root).resolve()

    try:
        planned = _plan(root_path, hooks_path, force)
    except PushGateError as e:
        print(f"❌ {e}", file=sys.stderr)
        return e.exit_status

    if dry_run:
        for path, _, executable in planned:
            mode = " (executable)" if executable else ""
            print(f"  Would write {path}{mode}")
        if hooks_path:
            print(f"  Would run git config core.hooksPath {hooks_path}")
        return ExitStatus.OK

    try:
        with Transaction("install") as txn:
            for path, content, executable in planned:
                txn.atomic_write(path, content)
                if executable:
                    txn.make_executable(path)
                print(f"  Creating {path} ... done")
            if hooks_path:
                _point_hooks_path(txn, root_path, hooks_path)
    except PushGateError as e:
        print(f"❌ Install failed, changes rolled back: {e}", file=sys.stderr)
        return e.exit_status
    except OSError as e:
        print(f"❌ Install failed, changes rolled back: {e}", file=sys.stderr)
        return ExitStatus.PERMISSION_ERROR

    print("✅ pushgate installed; security checks now run on every push")
    return ExitStatus.OK


def _point_hooks_path(txn: Transaction, root: Path, hooks_path: str) -> None:
    previous = _current_hooks_path(root)

    def restore() -> None:
        if previous is None:
            _git(["config", "--unset", "core.hooksPath"], root, check=False)
        else:
            _git(["config", "core.hooksPath", previous], root)

    txn.run_reversible(
        f"git config core.hooksPath {hooks_path}",
        lambda: _git(["config", "core.hooksPath", hooks_path], root),
        restore,
    )
    if previous is not None and previous != hooks_path:
        # Read back by uninstall
        txn.run_reversible(
            f"git config {PREVIOUS_HOOKS_PATH_KEY} {previous}",
            lambda: _git(["config", PREVIOUS_HOOKS_PATH_KEY, previous], root),
            lambda: _git(["config", "--unset", PREVIOUS_HOOKS_PATH_KEY], root, check=False),
        )
    print(f"  Setting core.hooksPath to {hooks_path} ... done")


# ---------------------------------------------------------------------------
# Uninstall
# ---------------------------------------------------------------------------

Step = tuple[str, Callable[[Transaction], object]]


def _is_generated(path: Path) -> bool:
    """True if ``path`` is a hook or dispatcher written by ``pushgate install``."""
    return path.is_file() and HOOK_MARKER in path.read_text(encoding="utf-8", errors="replace")


def _backup_key(path: Path) -> tuple[int, ...]:
    suffix = path.name.split(".backup.", 1)[1]
    return tuple(int(part) for part in suffix.split(".") if part.isdigit())


def _latest_foreign_backup(hook: Path) -> Path | None:
    """Newest ``<hook>.backup.*`` that is not a pushgate hook itself."""
    backups = [p for p in hook.parent.glob(f"{hook.name}.backup.*") if p.is_file() and not _is_generated(p)]
    return max(backups, key=_backup_key) if backups else None


def _hook_steps(hook: Path) -> list[Step]:
    if not hook.exists():
        return []
    if not _is_generated(hook):
        print(f"  ⚠️  {hook} was not installed by pushgate; leaving it in place")
        return []

    steps: list[Step] = [(f"Remove {hook}", lambda txn: txn.remove_file(hook))]
    backup = _latest_foreign_backup(hook)
    if backup is not None:
        steps.append((f"Restore {hook} from {backup.name}", lambda txn: txn.atomic_move(backup, hook)))
    return steps


def _dispatcher_steps(root: Path, hooks_path: str) -> list[Step]:
    hook_dir = root / hooks_path
    dispatcher = hook_dir / HOOK_NAME
    dispatch_dir = hook_dir / DISPATCH_DIR
    security = dispatch_dir / SECURITY_HOOK_NAME
    if not security.exists():
        return []

    stale = sorted(dispatch_dir.glob(f"{SECURITY_HOOK_NAME}.backup.*"))
    steps: list[Step] = [(f"Remove {security}", lambda txn: txn.remove_file(security))]
    steps.extend((f"Remove {p}", lambda txn, p=p: txn.remove_file(p)) for p in stale)
    others = [p for p in dispatch_dir.iterdir() if p != security and p not in stale]
    if others or not _is_generated(dispatcher):
        print(f"  Keeping dispatcher {dispatcher}; other pre-push hooks still use it")
        return steps

    steps.append((f"Remove {dispatcher}", lambda txn: txn.remove_file(dispatcher)))
    steps.append((f"Remove {dispatch_dir}", lambda txn: txn.remove_dir(dispatch_dir)))
    if any(p not in (dispatcher, dispatch_dir) for p in hook_dir.iterdir()):
        print(f"  Keeping core.hooksPath={hooks_path}; {hook_dir} holds other hooks")
        return steps

    steps.append((f"Remove {hook_dir}", lambda txn: txn.remove_dir(hook_dir)))
    previous = _git_config_get(root, PREVIOUS_HOOKS_PATH_KEY)
    action = f"Reset core.hooksPath to {previous}" if previous else "Unset core.hooksPath"
    steps.append((action, lambda txn: _restore_hooks_path(txn, root, hooks_path, previous)))
    return steps


def _config_steps(root: Path) -> list[Step]:
    steps: list[Step] = []
    control_dir = root / Path(DEFAULT_CONFIG_PATH).parent
    for rel in (DEFAULT_CONFIG_PATH, DEFAULT_ALLOWLIST_PATH):
        path = root / rel
        if path.is_file():
            steps.append((f"Remove {rel}", lambda txn, p=path: txn.remove_file(p)))

    ours = {root / DEFAULT_CONFIG_PATH, root / DEFAULT_ALLOWLIST_PATH}
    if control_dir.is_dir() and all(p in ours for p in control_dir.iterdir()):
        steps.append((f"Remove {control_dir.name}/", lambda txn: txn.remove_dir(control_dir)))
    return steps


def _restore_hooks_path(txn: Transaction, root: Path, hooks_path: str, previous: str | None) -> None:
    def forward() -> None:
        if previous:
            _git(["config", "core.hooksPath", previous], root)
            _git(["config", "--unset", PREVIOUS_HOOKS_PATH_KEY], root, check=False)
        else:
            _git(["config", "--unset", "core.hooksPath"], root)

    def inverse() -> None:
        _git(["config", "core.hooksPath", hooks_path], root)
        if previous:
            _git(["config", PREVIOUS_HOOKS_PATH_KEY, previous], root)

    txn.run_reversible("restore core.hooksPath", forward, inverse)


def _uninstall_plan(root: Path, keep_config: bool) -> list[Step]:
    steps: list[Step] = []
    hooks_path = _current_hooks_path(root)
    if hooks_path:
        steps.extend(_dispatcher_steps(root, hooks_path))

    hook = _hooks_dir(root) / HOOK_NAME
    if not hooks_path or hook.resolve() != (root / hooks_path / HOOK_NAME).resolve():
        steps.extend(_hook_steps(hook))

    if keep_config:
        print(f"  Keeping {Path(DEFAULT_CONFIG_PATH).parent}/ (--keep-config)")
    else:
        steps.extend(_config_steps(root))
    return steps


def uninstall(
    root: str | Path = ".",
    keep_config: bool = False,
    dry_run: bool = False,
) -> ExitStatus:
    """Remove what ``install`` created, in one transaction.

    Only hooks carrying the pushgate marker are removed. A pre-push hook
    that install displaced with ``--force`` is moved back into place, and
    ``core.hooksPath`` is reset once the dispatcher is no longer needed.

    Args:
        root: Repository root.
        keep_config: Leave ``.security-controls/`` untouched.
        dry_run: Print the plan without touching the filesystem.
    """
    root_path = Path(root).resolve()

    try:
        steps = _uninstall_plan(root_path, keep_config)
    except PushGateError as e:
        print(f"❌ {e}", file=sys.stderr)
        return e.exit_status

    if not steps:
        print("✅ Nothing to uninstall")
        return ExitStatus.OK

    if dry_run:
        for description, _ in steps:
            print(f"  Would {description[0].lower()}{description[1:]}")
        return ExitStatus.OK

    try:
        with Transaction("uninstall") as txn:
            for description, action in steps:
                action(txn)
                print(f"  {description} ... done")
    except PushGateError as e:
        print(f"❌ Uninstall failed, changes rolled back: {e}", file=sys.stderr)
        return e.exit_status
    except OSError as e:
        print(f"❌ Uninstall failed, changes rolled back: {e}", file=sys.stderr)
        return ExitStatus.PERMISSION_ERROR

    print("✅ pushgate uninstalled")
    return ExitStatus.OK


# ---------------------------------------------------------------------------
# Main command
# ---------------------------------------------------------------------------


def install_command(args: object) -> int:
    """Execute the install command.

    Args:
        args: Parsed CLI arguments with ``path``, ``hooks_path``, ``force``
              and ``dry_run`` attributes.
    """
    root = Path(getattr(args, "path", None) or ".")

    print()
    print("pushgate install")
    print("-" * 50)
    status = install(
        root,
        hooks_path=getattr(args, "hooks_path", None),
        force=getattr(args, "force", False),
        dry_run=getattr(args, "dry_run", False),
    )
    print("-" * 50)
    if status == ExitStatus.OK and not getattr(args, "dry_run", False):
        print("  Next steps:")
        print("    1. Review .security-controls/config.yml")
        print("    2. pushgate scan --mode full   (baseline audit)")
        print()
    return int(status)


def uninstall_command(args: object) -> int:
    """Execute the uninstall command.

    Args:
        args: Parsed CLI arguments with ``path``, ``keep_config`` and
              ``dry_run`` attributes.
    """
    root = Path(getattr(args, "path", None) or ".")

    print()
    print("pushgate uninstall")
    print("-" * 50)
    status = uninstall(
        root,
        keep_config=getattr(args, "keep_config", False),
        dry_run=getattr(args, "dry_run", False),
    )
    print("-" * 50)
    return int(status)
