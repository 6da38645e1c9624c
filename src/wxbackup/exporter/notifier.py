"""Notifiers for export run events."""

import logging
from typing import Optional

from .interfaces import ExportNotifier
from .progress import ProgressTracker

logger = logging.getLogger(__name__)


class LoggingNotifier(ExportNotifier):
    """Logs lifecycle events; used by the command line."""

    def __init__(self, log_interval: int = 25) -> None:
        self.log_interval = log_interval
        self.tracker: Optional[ProgressTracker] = None

    def on_start(self) -> None:
        self.tracker = ProgressTracker(log_interval=self.log_interval)
        logger.info("Export started")

    def on_progress(self, done: int, total: int) -> None:
        if self.tracker is None:
            return
        self.tracker.total = total
        self.tracker.update(done)

    def on_complete(self, cancelled: bool) -> None:
        elapsed = self.tracker.elapsed() if self.tracker else "00:00:00"
        logger.info(f"Export finished: {{'cancelled': {cancelled}, 'elapsed': {elapsed!r}}}")
