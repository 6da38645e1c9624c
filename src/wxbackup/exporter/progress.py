"""Progress tracking for export runs.

Tracks handled conversations against a total and derives rate and ETA.
"""

import logging
import time

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS``."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class ProgressTracker:
    """Counts handled items and estimates time remaining.

    ``total`` may change while running; progress restarts for each account.
    """

    def __init__(self, total: int = 0, log_interval: int = 25):
        self.total = total
        self.log_interval = log_interval
        self.done = 0
        self.start_time = time.time()
        self.last_log_time = self.start_time
        self.last_log_count = 0

    def update(self, done: int) -> None:
        """Set the handled count and log at every ``log_interval`` items."""
        self.done = done
        if done > 0 and self.log_interval and done % self.log_interval == 0:
            self._log_progress()

    def get_progress(self) -> dict:
        """Current progress statistics."""
        elapsed = time.time() - self.start_time
        rate = self.done / elapsed if elapsed > 0 else 0.0
        percentage = (self.done / self.total) * 100 if self.total > 0 else 0.0
        remaining = max(0, self.total - self.done)
        eta = remaining / rate if rate > 0 and remaining > 0 else 0.0
        return {
            "total": self.total,
            "done": self.done,
            "remaining": remaining,
            "percentage": percentage,
            "elapsed_seconds": elapsed,
            "rate_per_sec": rate,
            "eta_seconds": eta,
        }

    def _log_progress(self) -> None:
        progress = self.get_progress()
        now = time.time()
        delta_t = now - self.last_log_time
        instant_rate = (self.done - self.last_log_count) / delta_t if delta_t > 0 else 0.0
        logger.info(
            f"Progress: {self.done}/{self.total} "
            f"({progress['percentage']:.1f}%) - "
            f"{progress['rate_per_sec']:.2f} chats/sec (avg), "
            f"{instant_rate:.2f} chats/sec (current) - "
            f"ETA: {format_duration(progress['eta_seconds'])}"
        )
        self.last_log_time = now
        self.last_log_count = self.done

    def elapsed(self) -> str:
        return format_duration(time.time() - self.start_time)
