"""Hash table of watched disk blocks."""

from __future__ import annotations

import threading
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Optional

from .ext2dir import DirEntry

HASH_SIZE = 32768


def hash_block(block: int) -> int:
    """Bucket index of a block number."""
    return block % HASH_SIZE


@dataclass
class BlockNode:
    """A watched block and the directory listing it last held."""

    block: int
    inode: int
    type: int
    path: str
    dir: list[DirEntry] = field(default_factory=list)
    raw_block: Optional[bytes] = None


def _block_of(node: BlockNode) -> int:
    return node.block


class BlockTable:
    """Buckets of block nodes, each bucket kept sorted by block number."""

    def __init__(self) -> None:
        self._buckets: dict[int, list[BlockNode]] = {}
        self._lock = threading.Lock()

    def _find(self, bucket: list[BlockNode], block: int) -> int | None:
        pos = bisect_left(bucket, block, key=_block_of)
        if pos < len(bucket) and bucket[pos].block == block:
            return pos
        return None

    def insert(self, node: BlockNode) -> None:
        """Add a node; it goes ahead of any node with the same block number."""
        with self._lock:
            bucket = self._buckets.setdefault(hash_block(node.block), [])
            bucket.insert(bisect_left(bucket, node.block, key=_block_of), node)

    def remove(self, block: int) -> BlockNode | None:
        """Remove the first node for block and return it, or None if absent."""
        with self._lock:
            index = hash_block(block)
            bucket = self._buckets.get(index)
            if not bucket:
                return None
            pos = self._find(bucket, block)
            if pos is None:
                return None
            node = bucket.pop(pos)
            if not bucket:
                del self._buckets[index]
            return node

    def lookup(self, block: int) -> BlockNode | None:
        """Return the node watching block, or None."""
        with self._lock:
            bucket = self._buckets.get(hash_block(block))
            if not bucket:
                return None
            pos = self._find(bucket, block)
            return None if pos is None else bucket[pos]

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._buckets.values())

    def __contains__(self, block: object) -> bool:
        return isinstance(block, int) and self.lookup(block) is not None