"""
Filtering and ordering of usage statistics for reports.
"""

import re
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Union

from .stats import UsageStats


class SortMetric(Enum):
    """Metrics a report table can be ordered by (ascending)."""

    BLOCKS = "blocks"
    FILES = "files"
    DIRECTORIES = "directories"
    FILE_SIZE = "fileSize"

    @classmethod
    def parse(cls, name: Union[str, "SortMetric"]) -> "SortMetric":
        """Look up a metric by its option name, raising ValueError for unknown names."""
        if isinstance(name, cls):
            return name
        for metric in cls:
            if metric.value == name:
                return metric
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown sort metric: {name} (choose from {choices})")

    def key(self, stats: UsageStats) -> int:
        if self is SortMetric.BLOCKS:
            return stats.block_count
        if self is SortMetric.FILES:
            return stats.file_count
        if self is SortMetric.DIRECTORIES:
            return stats.directory_count
        return stats.total_file_size


def compile_name_filter(pattern: Optional[str]) -> Optional[Pattern]:
    """Compile a user name filter; None or empty means no filtering."""
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid user name filter '{pattern}': {e}") from e


def filter_users(
    user_stats: Iterable[UsageStats], pattern: Union[None, str, Pattern] = None
) -> List[UsageStats]:
    """Keep users whose name contains a match for pattern (search, not full match)."""
    if isinstance(pattern, str):
        pattern = compile_name_filter(pattern)
    if pattern is None:
        return list(user_stats)
    return [s for s in user_stats if pattern.search(s.key)]


def sort_stats(stats: Iterable[UsageStats], metric: Union[str, SortMetric]) -> List[UsageStats]:
    """Sort ascending by metric; ties keep their input order."""
    metric = SortMetric.parse(metric)
    return sorted(stats, key=metric.key)
