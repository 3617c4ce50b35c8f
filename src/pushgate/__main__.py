"""pushgate CLI entry point.

Usage:
    pushgate scan [--mode staged|full] [--redact] [--diff-file PATH] [--path DIR] [--config PATH]
    pushgate pincheck --dir PATH [--quiet]
    pushgate autopin --dir PATH [--actions] [--images] [--quiet]
    pushgate hook [--config PATH] [REMOTE [URL]]
    pushgate install [--path DIR] [--hooks-path DIR] [--force] [--dry-run]
    pushgate uninstall [--path DIR] [--keep-config] [--dry-run]
    python -m pushgate <command> [options]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pushgate.config import PushGateConfig
from pushgate.engine import HookEngine
from pushgate.errors import PushGateError
from pushgate.installer import install_command, uninstall_command
from pushgate.models import ExitStatus
from pushgate.pinning.validator import PinValidator
from pushgate.scanner import SecretScanner

logger = logging.getLogger(__name__)


def scan_command(args: argparse.Namespace) -> int:
    """Execute the scan command."""
    root = Path(getattr(args, "path", None) or ".").resolve()
    config = PushGateConfig.load(args.config, root=root)
    mode = args.mode or config.scan_mode

    diff_text = None
    if args.diff_file:
        diff_text = Path(args.diff_file).read_bytes().decode("utf-8", errors="replace")
        mode = "staged"

    scanner = SecretScanner(config, root)
    report = scanner.scan(mode, diff_text=diff_text)

    if not report.findings:
        print(
            f"✅ No secrets found ({report.lines_scanned} line(s) in {report.files_scanned} file(s), {report.mode.value})",
            file=sys.stderr,
        )
        return int(report.exit_status)

    print(f"🚫 {len(report.findings)} potential secret(s) found:", file=sys.stderr)
    for finding in report.findings:
        print(f"   {finding.render(redact=args.redact)}")
    print("\n   Remove the secret, or add a regex to the allowlist if it is a false positive.", file=sys.stderr)
    return int(report.exit_status)


def pincheck_command(args: argparse.Namespace) -> int:
    """Execute the pincheck command."""
    return int(PinValidator(quiet=args.quiet).check(args.dir))


def autopin_command(args: argparse.Namespace) -> int:
    """Execute the autopin command; neither kind flag selects both kinds."""
    actions, images = args.actions, args.images
    if not actions and not images:
        actions = images = True
    return int(PinValidator(quiet=args.quiet).autopin(args.dir, actions=actions, images=images))


def hook_command(args: argparse.Namespace) -> int:
    """Execute the pre-push hook: every enabled gate, one verdict."""
    config = PushGateConfig.load(args.config)
    if args.remote:
        logger.debug("Pushing to %s (%s)", args.remote, args.url)
    verdict = HookEngine(config).run()
    return int(verdict.status)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pushgate",
        description="pushgate: pre-push secret scanning and workflow pinning gate",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # scan subcommand
    scan_parser = subparsers.add_parser("scan", help="Scan staged changes or tracked files for secrets")
    scan_parser.add_argument(
        "--mode",
        type=str,
        choices=["staged", "full"],
        default=None,
        help="Scan mode: staged (added lines) or full (all tracked files); default from config",
    )
    scan_parser.add_argument(
        "--redact",
        action="store_true",
        help="Replace matched secret values with ***REDACTED*** in the output",
    )
    scan_parser.add_argument(
        "--diff-file",
        type=str,
        default=None,
        help="Path to a saved diff file to scan (instead of git diff --cached)",
    )
    scan_parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Repository root to scan (default: current directory)",
    )
    scan_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a config file (default: .security-controls/config.yml)",
    )

    # pincheck subcommand
    pincheck_parser = subparsers.add_parser("pincheck", help="Verify workflow references are pinned")
    pincheck_parser.add_argument("--dir", type=str, required=True, help="Workflow directory")
    pincheck_parser.add_argument("--quiet", action="store_true", help="Only print violations")

    # autopin subcommand
    autopin_parser = subparsers.add_parser("autopin", help="Rewrite floating workflow references to pinned ones")
    autopin_parser.add_argument("--dir", type=str, required=True, help="Workflow directory")
    autopin_parser.add_argument("--actions", action="store_true", help="Pin uses: action references")
    autopin_parser.add_argument("--images", action="store_true", help="Pin container and service images")
    autopin_parser.add_argument("--quiet", action="store_true", help="Only print failures")

    # hook subcommand
    hook_parser = subparsers.add_parser("hook", help="Run every pre-push gate (used by the installed hook)")
    hook_parser.add_argument("remote", nargs="?", default=None, help="Remote name, as passed by git")
    hook_parser.add_argument("url", nargs="?", default=None, help="Remote URL, as passed by git")
    hook_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a config file (default: .security-controls/config.yml)",
    )

    # install subcommand
    install_parser = subparsers.add_parser("install", help="Install config, allowlist and the pre-push hook")
    install_parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Repository root (default: current directory)",
    )
    install_parser.add_argument(
        "--hooks-path",
        type=str,
        default=None,
        help="Install a pre-push.d dispatcher here and point core.hooksPath at it",
    )
    install_parser.add_argument("--force", action="store_true", help="Replace an existing pre-push hook")
    install_parser.add_argument("--dry-run", action="store_true", help="Show what would be written")

    # uninstall subcommand
    uninstall_parser = subparsers.add_parser("uninstall", help="Remove the pre-push hook and control files")
    uninstall_parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Repository root (default: current directory)",
    )
    uninstall_parser.add_argument(
        "--keep-config",
        action="store_true",
        help="Leave .security-controls/ in place",
    )
    uninstall_parser.add_argument("--dry-run", action="store_true", help="Show what would be removed")

    return parser


_COMMANDS = {
    "scan": scan_command,
    "pincheck": pincheck_command,
    "autopin": autopin_command,
    "hook": hook_command,
    "install": install_command,
    "uninstall": uninstall_command,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    command = _COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = command(args)
    except PushGateError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(int(e.exit_status))
    except OSError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(int(ExitStatus.PERMISSION_ERROR))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
