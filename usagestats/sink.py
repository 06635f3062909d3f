"""
Traversal sink for usagewalk.

A driver walks a snapshot and calls on_file / on_directory / on_symlink once
per node, possibly from many workers at once. StatsCollector attributes
every node to the overall totals, its group and its user.
"""

import sys
import time
from typing import Optional, Sequence

from .nodes import FsNode
from .output import ProgressTracker
from .stats import Report, UsageStats, UNKNOWN_OWNER
from .utils import format_bytes, format_time


class StatsCollector:
    """Collect usage statistics from traversal callbacks into a Report."""

    def __init__(self, report: Report, verbose: int = 0, progress: Optional[ProgressTracker] = None):
        self.report = report
        self.verbose = verbose
        self.progress = progress

    def on_file(self, node: FsNode, path: str):
        for stats in self._resolve(node, path):
            stats.add_file(node.size, node.blocks)
        if self.progress:
            self.progress.update(files=1)

    def on_directory(self, node: FsNode, path: str):
        for stats in self._resolve(node, path):
            stats.add_directory()
        if self.progress:
            self.progress.update(dirs=1)

    def on_symlink(self, node: FsNode, path: str):
        # Symlinks only count; they carry no file content
        if self.verbose >= 2:
            print(f"[DEBUG] Symlink: {path}", file=sys.stderr)
        for stats in self._resolve(node, path):
            stats.add_symlink()
        if self.progress:
            self.progress.update(symlinks=1)

    def _resolve(self, node: FsNode, path: str) -> Sequence[UsageStats]:
        """Overall, group and user stats for a node."""
        group_name = self._owner_key(node.group, "group", path)
        user_name = self._owner_key(node.user, "owner", path)
        return (
            self.report.overall,
            self.report.get_or_create_group(group_name),
            self.report.get_or_create_user(user_name),
        )

    def _owner_key(self, value, what: str, path: str) -> str:
        if isinstance(value, str):
            return value
        # Still counted, so overall totals match the per-key sums
        if self.verbose:
            print(f"\r[WARN] No {what} for {path}, counting as unknown", file=sys.stderr)
        return UNKNOWN_OWNER


def compute_report(
    driver,
    path: str,
    verbose: int = 0,
    progress: Optional[ProgressTracker] = None,
    borders: Optional[Sequence[int]] = None,
) -> Report:
    """
    Visit path with the given driver and return the filled Report.

    Args:
        driver: Object providing visit_parallel(sink, path)
        path: Directory path to report on
        verbose: 0 quiet, 1 info, 2 debug
        progress: Optional ProgressTracker fed by the collector
        borders: Optional histogram bucket borders (bytes)

    Returns:
        Report with overall, per-group and per-user statistics

    Raises:
        Whatever the driver raises on I/O failure; the partial report is dropped.
    """
    report = Report(path, borders)
    collector = StatsCollector(report, verbose=verbose, progress=progress)

    if verbose:
        print(f"[INFO] Visiting {path} ...", file=sys.stderr)
    start = time.time()
    driver.visit_parallel(collector, path)
    if progress:
        progress.final_report()
    if verbose:
        print(f"[INFO] Visiting finished [{format_time(time.time() - start)}].", file=sys.stderr)
        overall = report.overall
        print(
            f"[INFO] {overall.file_count:,} files ({format_bytes(overall.total_file_size)}), "
            f"{overall.directory_count:,} directories, {overall.symlink_count:,} symlinks",
            file=sys.stderr,
        )

    return report
