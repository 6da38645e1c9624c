"""Common utilities for wxbackup packages."""

from .config import ConfigLoader
from .config_utils import auto_detect_io_workers, expand_path_variables
from .errors import ConfigurationError, WXBackupError, classify_error
from .logging import LogContext, setup_logging
from .logging_config import LoggingConfig
from .path_utils import combine_path, is_writable_directory, normalize_path

__all__ = [
    'ConfigLoader',
    'LoggingConfig',
    'setup_logging',
    'LogContext',
    'WXBackupError',
    'ConfigurationError',
    'classify_error',
    'normalize_path',
    'combine_path',
    'is_writable_directory',
    'expand_path_variables',
    'auto_detect_io_workers',
]
