"""
File size histogram for usagewalk.

Every histogram of one report shares the same upper borders so that the
bucket columns of all rows line up.
"""

from bisect import bisect_left
from typing import List, Optional, Sequence

from .utils import format_size_label, parse_size_to_bytes

MIB = 1 << 20
GIB = 1 << 30

# 0B, 1MiB, 2MiB, ..., 512MiB, 1GiB, ..., 128GiB
DEFAULT_BUCKET_BORDERS = (0,) + tuple(MIB << i for i in range(10)) + tuple(GIB << i for i in range(8))


class SizeHistogram:
    """Count file sizes into buckets with inclusive upper borders plus one overflow bucket."""

    def __init__(self, borders: Optional[Sequence[int]] = None):
        self.borders = validate_borders(DEFAULT_BUCKET_BORDERS if borders is None else borders)
        self.counts = [0] * (len(self.borders) + 1)

    def add(self, size: int):
        """Count one file of the given size (bytes)."""
        # First border >= size, or len(borders) for the overflow bucket
        self.counts[bisect_left(self.borders, size)] += 1

    def bucket_counts(self) -> List[int]:
        return list(self.counts)

    def bucket_upper_borders(self) -> List[int]:
        return list(self.borders)

    def total(self) -> int:
        return sum(self.counts)


def validate_borders(borders: Sequence[int]) -> tuple:
    """Check that borders are non-empty, non-negative and strictly increasing."""
    borders = tuple(int(b) for b in borders)
    if not borders:
        raise ValueError("At least one bucket border is required")
    if borders[0] < 0:
        raise ValueError(f"Bucket borders must be non-negative: {borders[0]}")
    for lower, upper in zip(borders, borders[1:]):
        if upper <= lower:
            raise ValueError(f"Bucket borders must be strictly increasing: {lower} >= {upper}")
    return borders


def parse_bucket_borders(value: str) -> tuple:
    """Parse a comma separated border list such as '0,1KiB,1MiB,1GiB'."""
    parts = [p for p in value.split(",") if p.strip()]
    return validate_borders([parse_size_to_bytes(p) for p in parts])


def bucket_labels(borders: Sequence[int]) -> List[str]:
    """Header labels for the bucket columns, overflow bucket last."""
    labels = [format_size_label(b) for b in borders]
    labels.append(">" + labels[-1])
    return labels
