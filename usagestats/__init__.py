"""
Usagestats package.

This package contains the aggregation, traversal and reporting components
of the usagewalk filesystem usage summary tool.
"""

# Import utility functions
from .utils import (
    format_http_error,
    extract_pagination_token,
    parse_size_to_bytes,
    format_bytes,
    format_size_label,
    format_time,
    format_owner_name,
)

# Import histogram
from .histogram import (
    DEFAULT_BUCKET_BORDERS,
    SizeHistogram,
    bucket_labels,
    parse_bucket_borders,
)

# Import statistics classes
from .stats import (
    UNKNOWN_OWNER,
    UsageStats,
    Report,
)

# Import node model
from .nodes import (
    FILE,
    DIRECTORY,
    SYMLINK,
    FsNode,
)

# Import traversal sink
from .sink import (
    StatsCollector,
    compute_report,
)

# Import selection and rendering
from .selection import (
    SortMetric,
    filter_users,
    sort_stats,
)
from .render import (
    ReportOptions,
    render_report,
)

# Import progress output
from .output import (
    ProgressTracker,
)

# Import traversal drivers
from .snapshot import (
    SnapshotError,
    SnapshotLoader,
)
from .client import (
    AsyncQumuloClient,
    QumuloTreeDriver,
)

# Import credentials and cache handling
from .credentials import (
    CREDENTIALS_FILENAME,
    IDENTITY_CACHE_FILE,
    IDENTITY_CACHE_TTL,
    credential_store_filename,
    get_credentials,
    load_identity_cache,
    save_identity_cache,
)

__all__ = [
    # Utils
    "format_http_error",
    "extract_pagination_token",
    "parse_size_to_bytes",
    "format_bytes",
    "format_size_label",
    "format_time",
    "format_owner_name",
    # Histogram
    "DEFAULT_BUCKET_BORDERS",
    "SizeHistogram",
    "bucket_labels",
    "parse_bucket_borders",
    # Stats
    "UNKNOWN_OWNER",
    "UsageStats",
    "Report",
    # Nodes
    "FILE",
    "DIRECTORY",
    "SYMLINK",
    "FsNode",
    # Sink
    "StatsCollector",
    "compute_report",
    # Selection / rendering
    "SortMetric",
    "filter_users",
    "sort_stats",
    "ReportOptions",
    "render_report",
    # Output
    "ProgressTracker",
    # Drivers
    "SnapshotError",
    "SnapshotLoader",
    "AsyncQumuloClient",
    "QumuloTreeDriver",
    # Credentials
    "CREDENTIALS_FILENAME",
    "IDENTITY_CACHE_FILE",
    "IDENTITY_CACHE_TTL",
    "credential_store_filename",
    "get_credentials",
    "load_identity_cache",
    "save_identity_cache",
]
