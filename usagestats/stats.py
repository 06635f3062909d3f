"""
Statistics tracking classes for usagewalk.

This module contains the per-key usage accumulators and the report that
owns them for one visited path.
"""

import threading
from typing import Dict, Optional, Sequence

from .histogram import SizeHistogram

# Key for nodes whose owner or group could not be determined
UNKNOWN_OWNER = ""


class UsageStats:
    """Running totals for one user, one group, or the overall tree."""

    def __init__(self, key: Optional[str] = None, borders: Optional[Sequence[int]] = None):
        self.key = key
        self.file_count = 0
        self.directory_count = 0
        self.symlink_count = 0
        self.block_count = 0
        self.total_file_size = 0
        self.size_histogram = SizeHistogram(borders)
        self.lock = threading.Lock()

    def add_file(self, size: int, blocks: int):
        """Count a file. All four fields change together under the lock."""
        with self.lock:
            self.file_count += 1
            self.total_file_size += size
            self.block_count += blocks
            self.size_histogram.add(size)

    def add_directory(self):
        with self.lock:
            self.directory_count += 1

    def add_symlink(self):
        with self.lock:
            self.symlink_count += 1

    @property
    def size_mib(self) -> int:
        """Total file size in whole MiB (truncated)."""
        return self.total_file_size // 1024 // 1024

    def __repr__(self):
        return (
            f"UsageStats(key={self.key!r}, files={self.file_count}, dirs={self.directory_count}, "
            f"symlinks={self.symlink_count}, blocks={self.block_count}, bytes={self.total_file_size})"
        )


class Report:
    """
    Usage statistics for one visited path.

    Holds the overall totals plus one UsageStats per distinct group and user.
    Entries are created on first sight and never replaced or removed, so
    concurrent callers asking for the same key always share one instance.
    """

    def __init__(self, path: str, borders: Optional[Sequence[int]] = None):
        self.path = path
        self.borders = tuple(SizeHistogram(borders).bucket_upper_borders())
        self.overall = UsageStats(None, self.borders)
        self.groups: Dict[str, UsageStats] = {}
        self.users: Dict[str, UsageStats] = {}
        self._groups_lock = threading.Lock()
        self._users_lock = threading.Lock()

    def get_or_create_group(self, group_name: str) -> UsageStats:
        return self._get_or_create(self.groups, self._groups_lock, group_name)

    def get_or_create_user(self, user_name: str) -> UsageStats:
        return self._get_or_create(self.users, self._users_lock, user_name)

    def _get_or_create(self, table: Dict[str, UsageStats], lock: threading.Lock, key: str) -> UsageStats:
        stats = table.get(key)
        if stats is not None:
            return stats
        with lock:
            # Another worker may have inserted the key while we waited
            stats = table.get(key)
            if stats is None:
                stats = UsageStats(key, self.borders)
                table[key] = stats
            return stats
