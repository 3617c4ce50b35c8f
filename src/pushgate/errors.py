"""Exception hierarchy for pushgate.

All operational errors inherit from PushGateError (single catch point) and
carry the exit status the CLI should terminate with. Violations are never
raised; they only shape the final exit code.
"""

from __future__ import annotations

from pushgate.models import ExitStatus


class PushGateError(Exception):
    """Base exception for all pushgate operational errors."""

    exit_status: ExitStatus = ExitStatus.VALIDATION_ERROR


class ConfigError(PushGateError):
    """Invalid configuration or allowlist file."""

    exit_status = ExitStatus.CONFIG_ERROR


class SourceError(PushGateError):
    """Could not enumerate the change set or tracked files."""


class WorkflowDirError(PushGateError):
    """The workflow directory to validate does not exist or is unreadable."""


class ResolutionError(PushGateError):
    """A floating reference could not be resolved to an immutable identifier."""

    exit_status = ExitStatus.NETWORK_ERROR


class InstallError(PushGateError):
    """An installation step failed; the transaction has been rolled back."""

    exit_status = ExitStatus.PERMISSION_ERROR


class TransactionInterrupted(PushGateError):
    """A termination signal arrived while a transaction was open."""
