from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import sys
import threading

# allow importing usagestats without installing
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from usagestats.stats import Report, UsageStats


def test_add_file_updates_all_fields():
    s = UsageStats("alice", [1024])
    s.add_file(500, 1)
    s.add_file(2000, 2)
    assert s.file_count == 2
    assert s.total_file_size == 2500
    assert s.block_count == 3
    assert s.size_histogram.bucket_counts() == [1, 1]
    assert s.directory_count == 0
    assert s.symlink_count == 0


def test_directory_and_symlink_do_not_touch_sizes():
    s = UsageStats("eng")
    s.add_directory()
    s.add_symlink()
    assert s.directory_count == 1
    assert s.symlink_count == 1
    assert s.file_count == 0
    assert s.total_file_size == 0
    assert s.block_count == 0
    assert sum(s.size_histogram.bucket_counts()) == 0


def test_size_mib_truncates():
    s = UsageStats()
    s.add_file(2 * 1024 * 1024 - 1, 1)
    assert s.size_mib == 1


def test_get_or_create_is_idempotent():
    report = Report("/home")
    alice = report.get_or_create_user("alice")
    assert report.get_or_create_user("alice") is alice
    report.get_or_create_user("bob")
    again = report.get_or_create_user("alice")
    assert again is alice
    assert again.file_count == 0
    assert set(report.users) == {"alice", "bob"}
    assert report.get_or_create_group("alice") is not alice


def test_overall_has_no_key_and_shares_borders():
    report = Report("/", [10, 20])
    assert report.overall.key is None
    assert report.get_or_create_group("eng").size_histogram.bucket_upper_borders() == [10, 20]


def test_concurrent_get_or_create_returns_one_instance():
    report = Report("/")
    barrier = threading.Barrier(16)

    def grab(_):
        barrier.wait()
        return report.get_or_create_user("carol")

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(grab, range(16)))

    assert len({id(r) for r in results}) == 1
    assert len(report.users) == 1


def test_concurrent_add_file_keeps_histogram_consistent():
    s = UsageStats("dave", [100])

    def work(i):
        for _ in range(500):
            s.add_file(i, 1)

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(work, [50, 150] * 4))

    assert s.file_count == 4000
    assert s.block_count == 4000
    assert s.total_file_size == 500 * 4 * (50 + 150)
    assert sum(s.size_histogram.bucket_counts()) == s.file_count
    assert s.size_histogram.bucket_counts() == [2000, 2000]
