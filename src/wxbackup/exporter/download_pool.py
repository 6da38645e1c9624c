"""Per-account media download pool.

Architecture:
- Producer: the exporter thread calls ``add_task`` and moves on
- Consumers: N worker threads pull from a priority queue
- Shutdown: ``cancel`` drops queued tasks; ``finish_and_wait`` drains and joins

Every download lands in a ``.part`` file first and is renamed into place,
so a cancelled or failed task never leaves a truncated asset behind.
"""

import itertools
import logging
import os
import shutil
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from queue import Empty, PriorityQueue
from typing import Dict, List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from .errors import DownloadError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; wxbackup)"


class DownloadStatus(Enum):
    """Status of a download task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DownloadTask:
    """A single download: source locator to destination file."""

    url: str
    output_path: Path
    priority: int = 0
    status: DownloadStatus = DownloadStatus.PENDING
    attempts: int = 0
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)


@dataclass
class DownloadStats:
    """Counters for one pool."""

    queued: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "queued": self.queued,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }


class Fetcher(ABC):
    """Writes the resource at ``url`` into ``destination``."""

    @abstractmethod
    def fetch(self, url: str, destination: Path, user_agent: str, timeout: float) -> None:
        """Raise on any failure; partial output is cleaned up by the pool."""


class RequestsFetcher(Fetcher):
    """HTTP(S) through ``requests``; local paths and file:// URLs are copied."""

    chunk_size = 65536

    def __init__(self) -> None:
        self._local = threading.local()

    def _session(self) -> requests.Session:
        # Sessions are not shared across worker threads
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def fetch(self, url: str, destination: Path, user_agent: str, timeout: float) -> None:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            self._fetch_http(url, destination, user_agent, timeout)
        elif parsed.scheme == "file":
            shutil.copyfile(url2pathname(parsed.path), destination)
        elif not parsed.scheme or len(parsed.scheme) == 1:
            # Plain path (a one-letter scheme is a Windows drive)
            shutil.copyfile(url, destination)
        else:
            raise DownloadError("Unsupported URL scheme", url=url, scheme=parsed.scheme)

    def _fetch_http(self, url: str, destination: Path, user_agent: str, timeout: float) -> None:
        try:
            with self._session().get(
                url,
                headers={"User-Agent": user_agent},
                timeout=timeout,
                stream=True,
            ) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise DownloadError(f"HTTP {status}", url=url) from e
        except requests.exceptions.Timeout as e:
            raise DownloadError("Request timed out", url=url) from e
        except requests.exceptions.RequestException as e:
            raise DownloadError(str(e), url=url) from e


_SENTINEL_PRIORITY = float("inf")


class DownloadPool:
    """Bounded-concurrency download workers owned by one account export.

    Usage:
        pool = DownloadPool(RequestsFetcher(), max_workers=4, user_agent=ua)
        pool.add_task(url, dest)          # returns immediately
        ...
        pool.cancel()                     # optional: drop queued tasks
        pool.finish_and_wait()            # drain and join workers

    A pool is single-use: tasks added after ``finish_and_wait`` are ignored.
    """

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        max_workers: int = 4,
        user_agent: str = "",
        timeout: float = 30.0,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        self.fetcher = fetcher or RequestsFetcher()
        self.max_workers = max(1, max_workers)
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

        self.stats = DownloadStats()
        self._queue: PriorityQueue = PriorityQueue()
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._pending = 0
        self._destinations: set = set()
        self._cancel_event = threading.Event()
        self._closed = False
        self._workers: List[threading.Thread] = []

        for i in range(self.max_workers):
            worker = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                name=f"download-{i}",
                daemon=True,
            )
            worker.start()
            self._workers.append(worker)

        logger.debug(f"DownloadPool started: {{'workers': {self.max_workers}, 'timeout': {timeout}}}")

    @property
    def running_count(self) -> int:
        """Tasks queued or in flight."""
        with self._lock:
            return self._pending

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def add_task(self, url: str, output_path: Path, priority: int = 0) -> bool:
        """Queue a download. Lower priority values run first.

        Returns False when the task was not queued (empty URL, duplicate
        destination, cancelled or finished pool).
        """
        if not url:
            return False
        output_path = Path(output_path)
        with self._lock:
            if self._closed or self._cancel_event.is_set():
                return False
            if output_path in self._destinations:
                return False
            self._destinations.add(output_path)
            self._pending += 1
            self.stats.queued += 1
        task = DownloadTask(url=url, output_path=output_path, priority=priority)
        self._queue.put((priority, next(self._seq), task))
        return True

    def cancel(self) -> None:
        """Drop every task that has not started; in-flight downloads finish."""
        self._cancel_event.set()
        dropped = 0
        while True:
            try:
                priority, seq, task = self._queue.get_nowait()
            except Empty:
                break
            if task is None:
                # Shutdown sentinel; keep it for the workers
                self._queue.put((priority, seq, task))
                self._queue.task_done()
                break
            task.status = DownloadStatus.CANCELLED
            self._finish(task)
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.info(f"Download pool cancelled: {{'dropped': {dropped}}}")

    def finish_and_wait(self) -> None:
        """Stop accepting tasks, let workers drain the queue, then join them."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for _ in self._workers:
            self._queue.put((_SENTINEL_PRIORITY, next(self._seq), None))
        for worker in self._workers:
            worker.join()
        logger.debug(f"DownloadPool finished: {self.stats.as_dict()}")

    def __enter__(self) -> "DownloadPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.cancel()
        self.finish_and_wait()

    def _worker_loop(self, worker_id: int) -> None:
        while True:
            _, _, task = self._queue.get()
            try:
                if task is None:
                    break
                try:
                    if self._cancel_event.is_set():
                        task.status = DownloadStatus.CANCELLED
                    else:
                        self._run_task(task)
                except OSError as e:
                    task.status = DownloadStatus.FAILED
                    task.error = str(e)
                    logger.warning(
                        f"Download failed: {{'url': {task.url!r}, 'path': {str(task.output_path)!r}, "
                        f"'error': {task.error!r}}}"
                    )
                finally:
                    self._finish(task)
            finally:
                self._queue.task_done()

    def _run_task(self, task: DownloadTask) -> None:
        if task.output_path.exists() and task.output_path.stat().st_size > 0:
            task.status = DownloadStatus.SKIPPED
            return

        task.status = DownloadStatus.IN_PROGRESS
        partial = task.output_path.with_name(task.output_path.name + ".part")
        while task.attempts < self.max_attempts:
            task.attempts += 1
            try:
                task.output_path.parent.mkdir(parents=True, exist_ok=True)
                self.fetcher.fetch(task.url, partial, self.user_agent, self.timeout)
                os.replace(partial, task.output_path)
                task.status = DownloadStatus.COMPLETED
                return
            except Exception as e:
                task.error = str(e)
                partial.unlink(missing_ok=True)
                if task.attempts < self.max_attempts and not self._cancel_event.is_set():
                    time.sleep(self.retry_delay)
                    continue
                break

        task.status = DownloadStatus.FAILED
        logger.warning(
            f"Download failed: {{'url': {task.url!r}, 'path': {str(task.output_path)!r}, "
            f"'attempts': {task.attempts}, 'error': {task.error!r}}}"
        )

    def _finish(self, task: DownloadTask) -> None:
        with self._lock:
            self._pending -= 1
            if task.status == DownloadStatus.COMPLETED:
                self.stats.completed += 1
            elif task.status == DownloadStatus.SKIPPED:
                self.stats.skipped += 1
            elif task.status == DownloadStatus.CANCELLED:
                self.stats.cancelled += 1
            else:
                self.stats.failed += 1
