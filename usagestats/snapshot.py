"""
JSON-lines snapshot driver for usagewalk.

A snapshot is a text file with one JSON object per line, shaped like a
Qumulo directory entry (as written by `--json` tree walks):

    {"path": "/home/alice/a.txt", "type": "FS_FILE_TYPE_FILE",
     "size": "2000", "datablocks": "1", "owner": "alice", "group": "eng"}

`owner_name` / `group_name`, when present, take precedence over `owner` /
`group`. The snapshot is read once; visit_parallel() can then be called
for any number of paths inside it.
"""

import posixpath
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

import ujson

from .nodes import FsNode, NODE_KINDS, FILE, dispatch, to_count


class SnapshotError(OSError):
    """The snapshot could not be read, is malformed, or lacks the requested path."""


def normalize_path(path: str) -> str:
    """Absolute, normalized POSIX path ('/a/b/' -> '/a/b')."""
    if not path.startswith("/"):
        path = "/" + path
    return posixpath.normpath(path).replace("//", "/")


class SnapshotLoader:
    """In-memory snapshot tree with a parallel, level-by-level visitor."""

    def __init__(self, nodes: Dict[str, FsNode], max_workers: int = 8, verbose: int = 0):
        self.nodes = nodes
        self.max_workers = max_workers
        self.verbose = verbose
        # Directory -> child paths, including directories only implied by deeper entries
        self.children: Dict[str, List[str]] = {}
        linked = set()
        for path in nodes:
            child = path
            while child != "/" and child not in linked:
                linked.add(child)
                parent = posixpath.dirname(child)
                self.children.setdefault(parent, []).append(child)
                child = parent

        for parent, paths in self.children.items():
            parent_node = nodes.get(parent)
            if parent_node is not None and not parent_node.is_dir:
                raise SnapshotError(f"Entry below a non-directory: {paths[0]} (parent {parent} is not a directory)")

    @classmethod
    def load(cls, snapshot_file: str, max_workers: int = 8, verbose: int = 0) -> "SnapshotLoader":
        """
        Read a JSON-lines snapshot file.

        Raises:
            SnapshotError: File unreadable, an entry is malformed or sits below a non-directory
        """
        nodes = {}
        try:
            with open(snapshot_file, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    path, node = parse_entry(line, snapshot_file, line_no)
                    nodes[path] = node
        except SnapshotError:
            raise
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotError(f"Cannot read snapshot {snapshot_file}: {e}") from e

        if verbose:
            print(f"[INFO] Loaded {len(nodes):,} entries from {snapshot_file}", file=sys.stderr)
        return cls(nodes, max_workers=max_workers, verbose=verbose)

    def visit_parallel(self, sink, root_path: str):
        """
        Call sink.on_file / on_directory / on_symlink once per node below root_path.

        The root node itself is visited first when the snapshot records it.
        Directories of one tree level are processed concurrently.

        Raises:
            SnapshotError: root_path is not part of the snapshot
        """
        root = normalize_path(root_path)
        root_node = self.nodes.get(root)
        if root_node is None and root not in self.children:
            raise SnapshotError(f"Path not found in snapshot: {root_path}")

        if root_node is not None:
            dispatch(sink, root, root_node)
            if not root_node.is_dir:
                return

        level = [root]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while level:
                next_level = []
                for subdirs in executor.map(lambda d: self._visit_directory(sink, d), level):
                    next_level.extend(subdirs)
                level = next_level

    def _visit_directory(self, sink, dir_path: str) -> List[str]:
        """Visit the entries of one directory and return its subdirectories."""
        subdirs = []
        for path in self.children.get(dir_path, ()):
            node = self.nodes.get(path)
            if node is not None:
                dispatch(sink, path, node)
            if node is None or node.is_dir:
                subdirs.append(path)
        return subdirs


def parse_entry(line: str, source: str = "<snapshot>", line_no: int = 0) -> Tuple[str, FsNode]:
    """Parse one snapshot line into (path, FsNode)."""
    try:
        entry = ujson.loads(line)
    except ValueError as e:
        raise SnapshotError(f"{source}:{line_no}: invalid JSON: {e}") from e

    if not isinstance(entry, dict) or not isinstance(entry.get("path"), str) or not entry["path"]:
        raise SnapshotError(f"{source}:{line_no}: entry has no path")

    kind = entry.get("type")
    if kind not in NODE_KINDS:
        raise SnapshotError(f"{source}:{line_no}: unknown entry type: {kind}")

    path = normalize_path(entry["path"])
    is_file = kind == FILE
    node = FsNode(
        kind,
        entry.get("name") or posixpath.basename(path) or "/",
        _owner_field(entry, "owner"),
        _owner_field(entry, "group"),
        size=to_count(entry.get("size")) if is_file else 0,
        blocks=to_count(entry.get("datablocks")) if is_file else 0,
    )
    return path, node


def _owner_field(entry: dict, field: str) -> Optional[str]:
    value = entry.get(f"{field}_name")
    if value is None:
        value = entry.get(field)
    # Passed through as-is; the sink counts non-string owners as unknown
    return value
