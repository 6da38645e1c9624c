"""Exporter-specific errors."""

from wxbackup.common import WXBackupError


class ExporterError(WXBackupError):
    """Base error for export pipeline operations."""
    pass


class OutputDirectoryError(ExporterError):
    """Output directory is missing, not writable, or cannot be created."""
    pass


class BackupLoadError(ExporterError):
    """The primary backup index could not be loaded."""
    pass


class NameResolutionError(ExporterError):
    """No candidate produced a usable file name."""
    pass


class RunInProgressError(ExporterError):
    """Operation is not allowed while an export run is active."""
    pass


class DownloadError(ExporterError):
    """A media download failed."""
    pass
