"""
Progress output for usagewalk.

Traversal callbacks arrive from several driver workers at once, so the
counters here are guarded by a thread lock.
"""

import sys
import threading
import time

from .utils import format_time


class ProgressTracker:
    """Track progress of a parallel tree visit with real-time updates."""

    def __init__(self, verbose: bool = False, interval: float = 0.5):
        self.files = 0
        self.dirs = 0
        self.symlinks = 0
        self.start_time = time.time()
        self.verbose = verbose
        self.interval = interval
        self.last_update = time.time()
        self.lock = threading.Lock()

    @property
    def total_objects(self) -> int:
        return self.files + self.dirs + self.symlinks

    def update(self, files: int = 0, dirs: int = 0, symlinks: int = 0):
        """Update progress counters."""
        with self.lock:
            self.files += files
            self.dirs += dirs
            self.symlinks += symlinks

            # Print progress every interval seconds
            if self.verbose and time.time() - self.last_update > self.interval:
                elapsed = time.time() - self.start_time
                rate = self.total_objects / elapsed if elapsed > 0 else 0
                print(
                    f"\r[PROGRESS] {self.total_objects:,} objects visited | "
                    f"{self.files:,} files | {self.dirs:,} dirs | {self.symlinks:,} symlinks | "
                    f"{rate:.1f} obj/sec | "
                    f"Run time: {format_time(elapsed)}",
                    end="",
                    file=sys.stderr,
                    flush=True,
                )
                self.last_update = time.time()

    def final_report(self):
        """Print final progress report."""
        if self.verbose:
            elapsed = time.time() - self.start_time
            rate = self.total_objects / elapsed if elapsed > 0 else 0
            print(
                f"\r[PROGRESS] FINAL: {self.total_objects:,} objects visited | "
                f"{self.files:,} files | {self.dirs:,} dirs | {self.symlinks:,} symlinks | "
                f"{rate:.1f} obj/sec | "
                f"Run time: {format_time(elapsed)}",
                file=sys.stderr,
            )
