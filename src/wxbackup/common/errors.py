"""Base error definitions shared by wxbackup packages."""

from typing import Any, Dict


class WXBackupError(Exception):
    """Base exception for all wxbackup errors.

    Extra keyword arguments are kept in ``context`` so log lines can carry
    the entity that failed (account id, path, ...).
    """

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def describe(self) -> str:
        """Message followed by the context fields, for log output."""
        if not self.context:
            return self.message
        fields = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({fields})"


class ConfigurationError(WXBackupError):
    """Configuration is invalid or missing."""
    pass


def classify_error(exception: BaseException) -> str:
    """Classify an exception into a short category for log lines.

    Returns one of 'permission', 'not_found', 'io', 'parse', 'wxbackup'
    or 'unknown'.
    """
    if isinstance(exception, PermissionError):
        return 'permission'
    if isinstance(exception, FileNotFoundError):
        return 'not_found'
    if isinstance(exception, OSError):
        return 'io'
    if isinstance(exception, (ValueError, KeyError, TypeError)):
        return 'parse'
    if isinstance(exception, WXBackupError):
        return 'wxbackup'
    return 'unknown'
