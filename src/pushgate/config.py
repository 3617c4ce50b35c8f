"""Configuration management for pushgate."""

from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any

import yaml  # type: ignore

from pushgate.errors import ConfigError

CONTROL_STATE_DIR = ".security-controls"
DEFAULT_CONFIG_PATH = f"{CONTROL_STATE_DIR}/config.yml"
DEFAULT_ALLOWLIST_PATH = f"{CONTROL_STATE_DIR}/secret-allowlist.txt"

_DEFAULT_CONFIG = {
    "allowlist": DEFAULT_ALLOWLIST_PATH,
    "gates": {
        "secrets": {"enabled": True},
        "pinning": {"enabled": True},
        "large_files": {"enabled": True},
    },
    "secret_scan": {
        "mode": "staged",
        "excluded_paths": [
            "target/",
            "node_modules/",
            "dist/",
            "build/",
            "vendor/",
            "coverage/",
            ".git/",
        ],
        "lockfiles": [
            "*.lock",
            "package-lock.json",
            "pnpm-lock.yaml",
            "npm-shrinkwrap.json",
            "go.sum",
        ],
    },
    "pinning": {
        "workflows_dir": ".github/workflows",
        "autopin": True,
    },
    "large_files": {
        "max_mb": 10,
    },
}


@dataclass
class GateConfig:
    """Configuration for a single hook gate."""

    enabled: bool = True


@dataclass
class PushGateConfig:
    """Full pushgate configuration loaded from `.security-controls/config.yml`."""

    allowlist_path: str = DEFAULT_ALLOWLIST_PATH
    gates: dict[str, GateConfig] = field(default_factory=dict)
    scan_mode: str = "staged"
    excluded_paths: list[str] = field(
        default_factory=lambda: list(_DEFAULT_CONFIG["secret_scan"]["excluded_paths"])
    )
    lockfile_patterns: list[str] = field(
        default_factory=lambda: list(_DEFAULT_CONFIG["secret_scan"]["lockfiles"])
    )
    workflows_dir: str = ".github/workflows"
    autopin: bool = True
    large_file_max_mb: float = 10

    @classmethod
    def load(cls, config_path: str | Path | None = None, root: str | Path = ".") -> PushGateConfig:
        """Load configuration from a YAML file, falling back to defaults.

        Search order:
        1. Explicit ``config_path`` argument
        2. ``.security-controls/config.yml`` under ``root``
        3. Built-in defaults
        """
        raw: dict[str, Any] = dict(_DEFAULT_CONFIG)

        search_paths: list[Path] = []
        if config_path:
            explicit = Path(config_path)
            if not explicit.exists():
                raise ConfigError(f"Config file not found: {explicit}")
            search_paths.append(explicit)
        search_paths.append(Path(root) / DEFAULT_CONFIG_PATH)

        for path in search_paths:
            if path.exists():
                try:
                    with open(path, encoding="utf-8") as f:
                        loaded = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {path}: {e}") from e
                if loaded and isinstance(loaded, dict):
                    raw = _deep_merge(raw, loaded)
                break

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict[str, Any]) -> PushGateConfig:
        """Build config from a raw dict (merged defaults + user overrides)."""
        cfg = cls()
        cfg.allowlist_path = raw.get("allowlist", cfg.allowlist_path)

        for name, settings in raw.get("gates", {}).items():
            if isinstance(settings, dict):
                cfg.gates[name] = GateConfig(enabled=bool(settings.get("enabled", True)))

        secret_scan = raw.get("secret_scan", {})
        cfg.scan_mode = secret_scan.get("mode", cfg.scan_mode)
        if cfg.scan_mode not in ("staged", "full"):
            raise ConfigError(f"secret_scan.mode must be 'staged' or 'full', got {cfg.scan_mode!r}")
        cfg.excluded_paths = list(secret_scan.get("excluded_paths", cfg.excluded_paths))
        cfg.lockfile_patterns = list(secret_scan.get("lockfiles", cfg.lockfile_patterns))

        pinning = raw.get("pinning", {})
        cfg.workflows_dir = pinning.get("workflows_dir", cfg.workflows_dir)
        cfg.autopin = bool(pinning.get("autopin", cfg.autopin))

        large_files = raw.get("large_files", {})
        try:
            cfg.large_file_max_mb = float(large_files.get("max_mb", cfg.large_file_max_mb))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"large_files.max_mb must be a number: {e}") from e

        return cfg

    def is_gate_enabled(self, gate_name: str) -> bool:
        """Check if a gate is enabled in the config."""
        gc = self.gates.get(gate_name)
        if gc is None:
            return True  # enabled by default
        return gc.enabled

    def is_path_excluded(self, file_path: str) -> bool:
        """Check if a repo-relative path starts with an excluded prefix."""
        normalized = PurePosixPath(file_path).as_posix()
        return any(normalized.startswith(prefix) for prefix in self.excluded_paths)

    def is_lockfile(self, file_path: str) -> bool:
        """Check if a path names a dependency lock file."""
        name = PurePosixPath(file_path).name
        return any(fnmatch(name, pattern) for pattern in self.lockfile_patterns)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep-merge override dict into base dict."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
