"""Follow a live-growing log file with watchdog.

New complete lines are handed to a callback together with the moment they
were read. The file is picked up again from the start when it is truncated,
recreated or moved into place, which is how the server rotates latest.log.
"""
from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .clock import utc_now

logger = logging.getLogger(__name__)

LineCallback = Callable[[str, datetime], None]


class SourceUnavailableError(OSError):
    """The watched log file could not be opened."""


class LogFileHandler(FileSystemEventHandler):
    """Tracks a byte offset into the log file and emits each new line once."""

    def __init__(
        self,
        log_path: str | Path,
        on_line: LineCallback,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__()
        self.log_path = Path(log_path).resolve()
        self.on_line = on_line
        self.clock = clock
        self.file_position = 0
        self._inode: int | None = None
        self._partial = b""
        self._lock = threading.Lock()

    def seek_to_end(self) -> None:
        """Skip everything already in the file; only appended lines are reported."""
        with self._lock:
            stat = self.log_path.stat()
            self.file_position = stat.st_size
            self._inode = stat.st_ino
            self._partial = b""

    def _is_target(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(path and Path(os.fsdecode(path)).resolve() == self.log_path for path in paths)

    def on_modified(self, event: FileSystemEvent) -> None:
        if self._is_target(event):
            self.read_new_content()

    def on_created(self, event: FileSystemEvent) -> None:
        if self._is_target(event):
            logger.info("Log file recreated, reading from the start")
            self._rewind()
            self.read_new_content()

    def on_moved(self, event: FileSystemEvent) -> None:
        if self._is_target(event):
            logger.info("Log file replaced, reading from the start")
            self._rewind()
            self.read_new_content()

    def _rewind(self) -> None:
        with self._lock:
            self.file_position = 0
            self._inode = None
            self._partial = b""

    def read_new_content(self) -> int:
        """Read appended bytes and emit complete lines. Returns the number emitted."""
        with self._lock:
            try:
                with open(self.log_path, "rb") as f:
                    stat = os.fstat(f.fileno())
                    if self._inode is not None and stat.st_ino != self._inode:
                        logger.info("Log file inode changed, reading from the start")
                        self.file_position = 0
                        self._partial = b""
                    elif stat.st_size < self.file_position:
                        logger.info("Log file truncated (size %d < position %d), reading from the start",
                                    stat.st_size, self.file_position)
                        self.file_position = 0
                        self._partial = b""
                    self._inode = stat.st_ino

                    f.seek(self.file_position)
                    data = f.read()
                    self.file_position = f.tell()
            except FileNotFoundError:
                logger.debug("Log file %s is missing, waiting for it to come back", self.log_path)
                return 0
            except OSError as exc:
                logger.warning("Error reading log file %s: %s", self.log_path, exc)
                return 0

            if not data:
                return 0

            observed_at = self.clock()
            chunks = (self._partial + data).split(b"\n")
            self._partial = chunks.pop()
            lines = [chunk.rstrip(b"\r").decode("utf-8", errors="replace") for chunk in chunks]

            # Emitted under the lock so concurrent readers cannot reorder lines.
            for line in lines:
                self.on_line(line, observed_at)
            return len(lines)


class LogFollower:
    """Watches the directory of the log file and feeds new lines to a callback."""

    def __init__(
        self,
        log_path: str | Path,
        on_line: LineCallback,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.log_path = Path(log_path)
        self.handler = LogFileHandler(self.log_path, on_line, clock=clock)
        self._observer: Observer | None = None

    def open(self) -> None:
        try:
            with open(self.log_path, "rb"):
                pass
            self.handler.seek_to_end()
        except OSError as exc:
            raise SourceUnavailableError(f"Cannot open log file {self.log_path}: {exc}") from exc

    def start(self) -> None:
        if self._observer is not None:
            logger.warning("Follower already started")
            return

        self.open()

        # watchdog watches directories, the handler filters for our file.
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.handler.log_path.parent), recursive=False)
        self._observer.start()
        logger.info("Started tailing: %s", self.log_path)

    def poll(self) -> int:
        """Read anything watchdog has not reported yet."""
        return self.handler.read_new_content()

    def stop(self) -> None:
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        logger.info("Stopped tailing: %s", self.log_path)
