"""Export messaging-app backups into browsable static HTML."""

__version__ = "0.1.0"
