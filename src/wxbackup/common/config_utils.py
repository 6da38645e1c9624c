"""Configuration helpers."""

import os
import tempfile
from pathlib import Path

import platformdirs


def expand_path_variables(path: str) -> str:
    """Expand ${VAR} placeholders in configured paths.

    Supported variables: ${USER_HOME}, ${USER_DATA}, ${USER_CONFIG},
    ${USER_CACHE}, ${USER_LOGS}, ${TEMP}. A leading ``~`` is expanded too.
    """
    if not isinstance(path, str):
        return path

    replacements = {
        "${USER_HOME}": str(Path.home()),
        "${USER_DATA}": platformdirs.user_data_dir("wxbackup", appauthor=False),
        "${USER_CONFIG}": platformdirs.user_config_dir("wxbackup", appauthor=False),
        "${USER_CACHE}": platformdirs.user_cache_dir("wxbackup", appauthor=False),
        "${USER_LOGS}": platformdirs.user_log_dir("wxbackup", appauthor=False),
        "${TEMP}": tempfile.gettempdir(),
    }
    for var, value in replacements.items():
        path = path.replace(var, value)
    return os.path.expanduser(path)


def auto_detect_io_workers(multiplier: float = 2.0, min_workers: int = 4, max_workers: int = 16) -> int:
    """Pick a thread count for I/O-bound work such as media downloads."""
    cpu_count = os.cpu_count() or 4
    return min(max_workers, max(min_workers, int(cpu_count * multiplier)))
