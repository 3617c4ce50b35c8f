"""Rollback-safe filesystem transactions.

Every forward mutation registers its inverse *before* it touches the disk;
rollback replays the inverses newest first.

Usage::

    with Transaction("install") as txn:
        txn.atomic_write(path, content)
        txn.make_executable(path)

A clean exit from the ``with`` block commits. Any exception, including
``KeyboardInterrupt`` and SIGTERM (converted to ``TransactionInterrupted``
while the block runs), replays the rollback log in reverse and re-raises.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import stat
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable

from pushgate.errors import TransactionInterrupted
from pushgate.models import FileOperation, RollbackAction

logger = logging.getLogger(__name__)


def replace_file(path: str | Path, content: str) -> None:
    """Write ``content`` to ``path`` through a temp file and ``os.replace``.

    Readers see either the old or the new file, never a partial write. The
    existing file mode is preserved; new files get the umask default.
    """
    target = Path(path)
    if target.exists():
        mode = stat.S_IMODE(target.stat().st_mode)
    else:
        umask = os.umask(0)
        os.umask(umask)
        mode = 0o666 & ~umask
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _backup_path(path: Path) -> Path:
    stamp = int(time.time())
    candidate = path.with_name(f"{path.name}.backup.{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.backup.{stamp}.{counter}")
        counter += 1
    return candidate


class Transaction:
    """An ordered rollback log around install-time filesystem mutations."""

    def __init__(self, name: str = "install") -> None:
        self.name = name
        self.active = False
        self.committed = False
        self.operations: list[FileOperation] = []
        self._rollback: list[RollbackAction] = []
        self._previous_sigterm = None

    # ── lifecycle ──────────────────────────────────────────────

    def begin(self, name: str | None = None) -> Transaction:
        if name is not None:
            self.name = name
        self._rollback = []
        self.operations = []
        self.active = True
        self.committed = False
        logger.info("Transaction started: %s", self.name)
        return self

    def add_rollback(self, description: str, action: Callable[[], None]) -> None:
        self._rollback.append(RollbackAction(description=description, callback=action))
        logger.debug("Added rollback action: %s", description)

    def commit(self) -> None:
        if not self.active:
            return
        self._rollback = []
        self.active = False
        self.committed = True
        logger.info("Transaction committed: %s", self.name)

    def rollback(self) -> list[str]:
        """Undo every registered action in reverse order.

        Individual failures are logged and skipped so the remaining actions
        still run.

        Returns:
            Descriptions of the actions that failed.
        """
        failures: list[str] = []
        logger.warning("Rolling back transaction %s (%d actions)", self.name, len(self._rollback))
        for action in reversed(self._rollback):
            logger.info("Rolling back: %s", action.description)
            try:
                action.callback()
            except Exception as e:  # noqa: BLE001
                logger.error("Rollback action failed: %s: %s", action.description, e)
                failures.append(action.description)
        self._rollback = []
        self.active = False
        return failures

    @property
    def pending(self) -> list[str]:
        return [a.description for a in self._rollback]

    def __enter__(self) -> Transaction:
        self.begin()
        self._install_signal_handler()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._restore_signal_handler()
        if exc_type is None:
            self.commit()
        elif self.active:
            self.rollback()
        return False

    def _install_signal_handler(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def _on_sigterm(signum, frame):
            raise TransactionInterrupted(f"Received signal {signum} during transaction {self.name}")

        self._previous_sigterm = signal.signal(signal.SIGTERM, _on_sigterm)

    def _restore_signal_handler(self) -> None:
        if self._previous_sigterm is not None:
            signal.signal(signal.SIGTERM, self._previous_sigterm)
            self._previous_sigterm = None

    # ── file operations ────────────────────────────────────────

    def _ensure_parent(self, path: Path) -> None:
        """Create missing parent directories, registering their removal."""
        missing: list[Path] = []
        parent = path.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        for directory in reversed(missing):
            self.add_rollback(f"rmdir {directory}", lambda d=directory: d.rmdir() if d.exists() else None)
            directory.mkdir()

    def atomic_write(self, path: str | Path, content: str) -> FileOperation:
        """Write a file, backing up any previous version first."""
        target = Path(path)
        self._ensure_parent(target)

        previous: str | None = None
        if target.exists():
            previous = target.read_text(encoding="utf-8", errors="replace")
            backup = _backup_path(target)
            shutil.copy2(target, backup)
            self.add_rollback(f"restore {target} from {backup}", lambda: os.replace(backup, target))
            logger.debug("Created backup: %s", backup)
        else:
            self.add_rollback(f"remove {target}", lambda: target.unlink(missing_ok=True))

        replace_file(target, content)
        op = FileOperation(path=str(target), new_content=content, previous_snapshot=previous)
        self.operations.append(op)
        logger.debug("Atomic write completed: %s", target)
        return op

    def atomic_move(self, src: str | Path, dest: str | Path) -> FileOperation:
        """Move ``src`` over ``dest``, backing up any previous ``dest``.

        Rollback moves the file back to ``src`` and restores the old ``dest``.
        """
        source, target = Path(src), Path(dest)
        self._ensure_parent(target)

        previous: str | None = None
        if target.exists():
            previous = target.read_text(encoding="utf-8", errors="replace")
            backup = _backup_path(target)
            self.add_rollback(f"restore {target} from {backup}", lambda: os.replace(backup, target))
            os.replace(target, backup)

        self.add_rollback(f"move {target} back to {source}", lambda: os.replace(target, source))
        os.replace(source, target)
        op = FileOperation(path=str(target), new_content=None, previous_snapshot=previous)
        self.operations.append(op)
        logger.debug("Atomic move: %s -> %s", source, target)
        return op

    def remove_file(self, path: str | Path) -> FileOperation:
        """Delete a file; its content and mode are kept in memory for rollback."""
        target = Path(path)
        data = target.read_bytes()
        mode = stat.S_IMODE(target.stat().st_mode)

        def restore() -> None:
            target.write_bytes(data)
            target.chmod(mode)

        self.add_rollback(f"restore {target}", restore)
        target.unlink()
        op = FileOperation(
            path=str(target), new_content=None, previous_snapshot=data.decode("utf-8", errors="replace")
        )
        self.operations.append(op)
        logger.debug("Removed: %s", target)
        return op

    def remove_dir(self, path: str | Path) -> None:
        """Remove an empty directory, recreating it on rollback."""
        target = Path(path)
        self.add_rollback(f"mkdir {target}", lambda: target.mkdir(exist_ok=True))
        target.rmdir()

    def make_executable(self, path: str | Path) -> None:
        target = Path(path)
        old_mode = stat.S_IMODE(target.stat().st_mode)
        self.add_rollback(f"chmod {oct(old_mode)} {target}", lambda: target.chmod(old_mode) if target.exists() else None)
        target.chmod(old_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def run_reversible(self, description: str, forward: Callable[[], None], inverse: Callable[[], None]) -> None:
        """Run an arbitrary side effect with a registered inverse."""
        self.add_rollback(f"undo {description}", inverse)
        forward()
