import json
from pathlib import Path
import sys
import threading

import pytest

# allow importing usagestats without installing
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from usagestats.nodes import FILE, DIRECTORY, SYMLINK
from usagestats.sink import compute_report
from usagestats.snapshot import SnapshotError, SnapshotLoader, normalize_path, parse_entry


def entry(path, kind, owner="alice", group="eng", size=None, blocks=None, **extra):
    e = {"path": path, "type": kind, "owner": owner, "group": group}
    if size is not None:
        e["size"] = str(size)
    if blocks is not None:
        e["datablocks"] = str(blocks)
    e.update(extra)
    return e


def write_snapshot(tmp_path: Path, entries, name="tree.jsonl") -> Path:
    snapshot = tmp_path / name
    with open(snapshot, "w", encoding="utf-8") as fh:
        for e in entries:
            fh.write(json.dumps(e) + "\n")
    return snapshot


def sample_entries():
    return [
        entry("/", DIRECTORY, owner="root", group="root"),
        entry("/home/", DIRECTORY),
        entry("/home/sub", DIRECTORY),
        entry("/home/link", SYMLINK),
        entry("/home/a", FILE, size=500, blocks=1),
        entry("/home/sub/b", FILE, size=2000, blocks=1),
        entry("/home/sub/c", FILE, size=2_000_000, blocks=489),
        entry("/other/d", FILE, owner="bob", group="ops", size=7, blocks=1),
    ]


class RecordingSink:
    def __init__(self):
        self.calls = []
        self.lock = threading.Lock()

    def _record(self, kind, node, path):
        with self.lock:
            self.calls.append((kind, path, node.name))

    def on_file(self, node, path):
        self._record("file", node, path)

    def on_directory(self, node, path):
        self._record("dir", node, path)

    def on_symlink(self, node, path):
        self._record("symlink", node, path)


def test_visit_subtree_once_per_node(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())), max_workers=4)
    sink = RecordingSink()
    loader.visit_parallel(sink, "/home")
    assert sorted(sink.calls) == sorted([
        ("dir", "/home", "home"),
        ("dir", "/home/sub", "sub"),
        ("symlink", "/home/link", "link"),
        ("file", "/home/a", "a"),
        ("file", "/home/sub/b", "b"),
        ("file", "/home/sub/c", "c"),
    ])
    # parents before children
    paths = [c[1] for c in sink.calls]
    assert paths.index("/home/sub") < paths.index("/home/sub/b")


def test_end_to_end_report(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())))
    report = compute_report(loader, "/home/")
    assert report.overall.file_count == 3
    assert report.overall.directory_count == 2
    assert report.overall.symlink_count == 1
    assert report.overall.block_count == 491
    assert report.users["alice"].file_count == 3
    assert set(report.users) == {"alice"}


def test_whole_tree_includes_root(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())))
    report = compute_report(loader, "/")
    assert report.overall.file_count == 4
    assert report.overall.directory_count == 3
    assert report.users["root"].directory_count == 1
    assert report.groups["ops"].total_file_size == 7


def test_implicit_directory_without_entry(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())))
    report = compute_report(loader, "/other")
    assert report.overall.file_count == 1
    assert report.overall.directory_count == 0


def test_file_root(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())))
    sink = RecordingSink()
    loader.visit_parallel(sink, "/home/a")
    assert sink.calls == [("file", "/home/a", "a")]


def test_unknown_path_raises(tmp_path: Path):
    loader = SnapshotLoader.load(str(write_snapshot(tmp_path, sample_entries())))
    with pytest.raises(SnapshotError, match="not found"):
        loader.visit_parallel(RecordingSink(), "/nope")


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(SnapshotError, match="Cannot read snapshot"):
        SnapshotLoader.load(str(tmp_path / "missing.jsonl"))


def test_malformed_line_raises(tmp_path: Path):
    snapshot = tmp_path / "bad.jsonl"
    snapshot.write_text('{"path": "/a", "type": "FS_FILE_TYPE_FILE"}\n{not json\n', encoding="utf-8")
    with pytest.raises(SnapshotError, match=":2:"):
        SnapshotLoader.load(str(snapshot))


def test_unknown_type_raises():
    with pytest.raises(SnapshotError, match="unknown entry type"):
        parse_entry(json.dumps({"path": "/p", "type": "FS_FILE_TYPE_UNIX_PIPE"}))


def test_entry_without_path_raises():
    with pytest.raises(SnapshotError, match="no path"):
        parse_entry(json.dumps({"type": FILE}))


def test_blank_lines_skipped(tmp_path: Path):
    snapshot = tmp_path / "blank.jsonl"
    snapshot.write_text('\n{"path": "/a", "type": "FS_FILE_TYPE_FILE", "size": "3"}\n\n', encoding="utf-8")
    loader = SnapshotLoader.load(str(snapshot))
    assert list(loader.nodes) == ["/a"]


def test_parse_entry_fields():
    path, node = parse_entry(json.dumps(
        entry("/x/y.bin", FILE, owner="12884901888", group="g", size="4096", blocks="1",
              owner_name="carol")
    ))
    assert path == "/x/y.bin"
    assert node.name == "y.bin"
    assert node.user == "carol"
    assert node.group == "g"
    assert node.size == 4096
    assert node.blocks == 1


def test_parse_entry_coerces_bad_numbers():
    _, node = parse_entry(json.dumps({"path": "/f", "type": FILE, "size": "-5", "datablocks": "x"}))
    assert node.size == 0
    assert node.blocks == 0
    assert node.user is None


def test_directories_carry_no_size():
    _, node = parse_entry(json.dumps({"path": "/d", "type": DIRECTORY, "size": "4096", "datablocks": "1"}))
    assert node.size == 0
    assert node.blocks == 0


@pytest.mark.parametrize("raw,expected", [
    ("/", "/"),
    ("home", "/home"),
    ("/home/", "/home"),
    ("//home//a/", "/home/a"),
])
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


@pytest.mark.parametrize("bad_path", [5, ["x"], {"p": "/a"}])
def test_non_string_path_raises(bad_path):
    with pytest.raises(SnapshotError, match="no path"):
        parse_entry(json.dumps({"path": bad_path, "type": FILE}), "tree.jsonl", 3)


def test_entry_below_file_rejected(tmp_path: Path):
    entries = [
        entry("/a", FILE, size=10, blocks=1),
        entry("/a/b", FILE, size=20, blocks=1),
    ]
    with pytest.raises(SnapshotError, match="non-directory"):
        SnapshotLoader.load(str(write_snapshot(tmp_path, entries)))


def test_entry_below_symlink_rejected(tmp_path: Path):
    entries = [
        entry("/d", DIRECTORY),
        entry("/d/link", SYMLINK),
        entry("/d/link/x", DIRECTORY),
    ]
    with pytest.raises(SnapshotError, match="/d/link"):
        SnapshotLoader.load(str(write_snapshot(tmp_path, entries)))
