"""
Node model handed to traversal sinks.

Node kinds reuse the Qumulo file type names so that API entries and
snapshot lines map onto nodes without translation.
"""

from typing import Optional

FILE = "FS_FILE_TYPE_FILE"
DIRECTORY = "FS_FILE_TYPE_DIRECTORY"
SYMLINK = "FS_FILE_TYPE_SYMLINK"

NODE_KINDS = (FILE, DIRECTORY, SYMLINK)


class FsNode:
    """One filesystem object: kind, name, owning user and group, and for files size and blocks."""

    __slots__ = ("kind", "name", "user", "group", "size", "blocks")

    def __init__(
        self,
        kind: str,
        name: str,
        user: Optional[str],
        group: Optional[str],
        size: int = 0,
        blocks: int = 0,
    ):
        self.kind = kind
        self.name = name
        self.user = user
        self.group = group
        self.size = size
        self.blocks = blocks

    @property
    def is_dir(self) -> bool:
        return self.kind == DIRECTORY

    def __repr__(self):
        return f"FsNode({self.kind}, {self.name!r}, user={self.user!r}, group={self.group!r}, size={self.size})"


def to_count(value) -> int:
    """Coerce an API/snapshot numeric field (often a string) to a non-negative int, 0 if unusable."""
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return count if count > 0 else 0


def dispatch(sink, path: str, node: FsNode):
    """Call the sink callback matching the node kind."""
    if node.kind == FILE:
        sink.on_file(node, path)
    elif node.kind == DIRECTORY:
        sink.on_directory(node, path)
    elif node.kind == SYMLINK:
        sink.on_symlink(node, path)
