#!/usr/bin/env python3
"""Git pre-push hook for pushgate.

Install with `pushgate install`, or copy or symlink this file to
`.git/hooks/pre-push`. With the pre-commit framework:

    # .pre-commit-config.yaml
    repos:
      - repo: local
        hooks:
          - id: pushgate
            name: pushgate security gate
            entry: python -m pushgate hook
            language: python
            stages: [pre-push]
            pass_filenames: false
            always_run: true
"""

from __future__ import annotations

import subprocess
import sys


def main(argv: list[str] | None = None) -> int:
    """Run every pushgate gate; a nonzero exit blocks the push."""
    cmd = [sys.executable, "-m", "pushgate", "hook", *(argv or [])]
    result = subprocess.run(cmd)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
