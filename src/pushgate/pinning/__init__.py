"""Workflow reference extraction, pin validation and autopin rewriting."""

from pushgate.pinning.extractor import classify, extract_references, workflow_files
from pushgate.pinning.resolver import BaseResolver, RemoteResolver
from pushgate.pinning.validator import PinValidator

__all__ = [
    "BaseResolver",
    "PinValidator",
    "RemoteResolver",
    "classify",
    "extract_references",
    "workflow_files",
]
