"""pushgate: pre-push secret scanning and automation pin enforcement."""

__version__ = "0.1.0"
