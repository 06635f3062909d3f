"""
Text report rendering for usagewalk.

Produces the fixed-width summary: overall totals, then one table by group
and one by user. Histogram bucket columns are sized once per table so that
every row of a table shares the same column boundaries.
"""

import sys
from typing import List, Optional, Sequence, TextIO

from .histogram import bucket_labels
from .selection import SortMetric, compile_name_filter, filter_users, sort_stats
from .stats import Report, UsageStats

KEY_WIDTH = 22

OVERALL_COLUMNS = (
    ("#Groups", 8),
    ("#Users", 11),
    ("#Directories", 12),
    ("#Symlinks", 9),
    ("#Files", 11),
    ("Size [MiB]", 10),
    ("#Blocks", 11),
)

KEY_COLUMNS = (
    ("#Directories", 12),
    ("#Symlinks", 9),
    ("#Files", 11),
    ("Size [MiB]", 10),
    ("#Blocks", 11),
)

BUCKETS_TITLE = "File Size Buckets"


class ReportOptions:
    """
    Report settings, validated up front.

    Args:
        sort_metric: One of blocks, files, directories, fileSize
        user_name_filter: Optional regular expression matched (search) against user names

    Raises:
        ValueError: Unknown sort metric or malformed filter expression
    """

    def __init__(self, sort_metric="blocks", user_name_filter: Optional[str] = None):
        self.sort_metric = SortMetric.parse(sort_metric)
        self.user_name_filter = user_name_filter
        self.user_name_pattern = compile_name_filter(user_name_filter)


def bucket_widths(labels: Sequence[str], stats: Sequence[UsageStats]) -> List[int]:
    """Width per bucket column: the label or the widest count in any row, whichever is wider."""
    widths = [len(label) for label in labels]
    for s in stats:
        for i, count in enumerate(s.size_histogram.bucket_counts()):
            widths[i] = max(widths[i], len(str(count)))
    return widths


def format_bucket_header(labels: Sequence[str], widths: Sequence[int]) -> str:
    return " ".join(f"{label:>{width}}" for label, width in zip(labels, widths))


def format_bucket_counts(stats: UsageStats, widths: Sequence[int]) -> str:
    return " ".join(f"{count:0{width}d}" for count, width in zip(stats.size_histogram.bucket_counts(), widths))


def _header_lines(first_cell: str, columns, bucket_header: str) -> List[str]:
    names = [first_cell] + [f"{name:<{width}}" for name, width in columns]
    blanks = [" " * len(first_cell)] + [" " * width for _, width in columns]
    line1 = " | ".join(names + [BUCKETS_TITLE])
    line2 = " | ".join(blanks + [bucket_header])
    return [line1, line2, "-" * max(len(line1), len(line2))]


def _key_values(stats: UsageStats):
    return (stats.directory_count, stats.symlink_count, stats.file_count, stats.size_mib, stats.block_count)


def _write_key_table(out: TextIO, title: str, rows: Sequence[UsageStats], labels: Sequence[str]):
    widths = bucket_widths(labels, rows)
    first_cell = f"{title:<{KEY_WIDTH - 9}}{len(rows):>9d}"
    for line in _header_lines(first_cell, KEY_COLUMNS, format_bucket_header(labels, widths)):
        print(line, file=out)
    for stats in rows:
        cells = [f"{stats.key or '-':>{KEY_WIDTH}}"]
        cells += [f"{value:>{width}d}" for value, (_, width) in zip(_key_values(stats), KEY_COLUMNS)]
        cells.append(format_bucket_counts(stats, widths))
        print(" | ".join(cells), file=out)


def render_report(options: ReportOptions, report: Report, out: Optional[TextIO] = None):
    """Write the usage summary of a finished report as text."""
    out = out or sys.stdout
    overall = report.overall
    labels = bucket_labels(report.borders)

    title = f"Usage Summary : {report.path}"
    print(file=out)
    print(title, file=out)
    print("-" * len(title), file=out)
    print(file=out)

    # Overall
    widths = bucket_widths(labels, [overall])
    first_name, first_width = OVERALL_COLUMNS[0]
    for line in _header_lines(f"{first_name:<{first_width}}", OVERALL_COLUMNS[1:], format_bucket_header(labels, widths)):
        print(line, file=out)
    values = (len(report.groups), len(report.users)) + _key_values(overall)
    cells = [f"{value:>{width}d}" for value, (_, width) in zip(values, OVERALL_COLUMNS)]
    cells.append(format_bucket_counts(overall, widths))
    print(" | ".join(cells), file=out)
    print(file=out)

    # Groups
    groups = sort_stats(report.groups.values(), options.sort_metric)
    _write_key_table(out, "By group:", groups, labels)
    print(file=out)

    # Users
    users = sort_stats(filter_users(report.users.values(), options.user_name_pattern), options.sort_metric)
    _write_key_table(out, "By user:", users, labels)
