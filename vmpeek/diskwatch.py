"""Watching directories of a guest disk image through its block write log."""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, TextIO, Union

from .blockhash import BlockNode, BlockTable
from .ext2 import locate_directory, read_group_descriptors, read_superblock
from .ext2dir import BLOCK_SIZE, FT_DIR, SECTOR_SIZE, compare_dirs, parse_block_dir, sort_dir

RECORD_SIZE = 5009
OP_WRITE = 1
SECTORS_PER_BLOCK = BLOCK_SIZE // SECTOR_SIZE

_HEADER = struct.Struct("<BQi")
_MIN_RECORD = _HEADER.size + BLOCK_SIZE


@dataclass(frozen=True)
class BlockOp:
    """One block operation read from the disk log."""

    op: int
    sector: int
    nb_sectors: int
    data: bytes

    @property
    def block(self) -> int:
        """File system block the operation starts in."""
        return self.sector // SECTORS_PER_BLOCK


@dataclass(frozen=True)
class WatchedDir:
    """A directory being watched and the blocks that hold it."""

    path: str
    inode: int
    blocks: tuple[int, ...]


def parse_op(buf: bytes) -> BlockOp:
    """Decode a log record: operation, sector, sector count and one block of data."""
    if len(buf) < _MIN_RECORD:
        raise ValueError(f"log record too short: {len(buf)} bytes, need {_MIN_RECORD}")
    op, sector, nb_sectors = _HEADER.unpack_from(buf, 0)
    data = bytes(buf[_HEADER.size:_HEADER.size + BLOCK_SIZE])
    return BlockOp(op, sector, nb_sectors, data)


def encode_op(op: int, sector: int, nb_sectors: int, data: bytes) -> bytes:
    """Build a fixed-size log record as written by the logging disk driver."""
    if len(data) > BLOCK_SIZE:
        raise ValueError(f"block data longer than {BLOCK_SIZE} bytes")
    record = _HEADER.pack(op, sector, nb_sectors) + bytes(data).ljust(BLOCK_SIZE, b"\0")
    return record.ljust(RECORD_SIZE, b"\0")


def _records(stream: BinaryIO) -> Iterator[BlockOp]:
    while True:
        buf = stream.read(RECORD_SIZE)
        if not buf:
            return
        while len(buf) < RECORD_SIZE:
            more = stream.read(RECORD_SIZE - len(buf))
            if not more:
                break
            buf += more
        if len(buf) < _MIN_RECORD:
            return
        yield parse_op(buf)


class DiskWatcher:
    """Reports entries created and removed in watched directories of an ext2 image."""

    def __init__(self, image_path: Union[str, "os.PathLike[str]"]) -> None:
        self.image_path = str(image_path)
        self._image: BinaryIO = open(self.image_path, "rb")
        try:
            self.sb = read_superblock(self._image)
            self.inode_tables = read_group_descriptors(self._image, self.sb)
        except BaseException:
            self._image.close()
            raise
        self.table = BlockTable()
        self._thread: Optional[threading.Thread] = None
        self._tap: Optional[BinaryIO] = None
        self._error: Optional[BaseException] = None
        self._closing = False

    def set_watch(self, path: str) -> WatchedDir:
        """Start watching the directory at path; raises FileNotFoundError if absent."""
        inode, blocks = locate_directory(self._image, self.sb, self.inode_tables, path)
        for block in blocks:
            self._image.seek(block * BLOCK_SIZE)
            raw = self._image.read(BLOCK_SIZE)
            if len(raw) != BLOCK_SIZE:
                raise ValueError(f"image truncated at block {block}")
            entries = sort_dir(parse_block_dir(raw, BLOCK_SIZE))
            self.table.insert(BlockNode(block, inode, FT_DIR, path, entries))
        return WatchedDir(path, inode, tuple(blocks))

    def unset_watch(self, watched: WatchedDir) -> None:
        """Stop watching a directory."""
        for block in watched.blocks:
            self.table.remove(block)

    def handle_op(self, op: BlockOp) -> list[str]:
        """Return one report line per change the operation makes to a watched block."""
        node = self.table.lookup(op.block)
        if node is None:
            return []
        current = sort_dir(parse_block_dir(op.data, BLOCK_SIZE))
        diff = compare_dirs(node.dir, current)
        if diff:
            node.dir = current
        return [f"{change.op.name}: {node.path}/{change.name}" for change in diff]

    def run(self, stream: BinaryIO, out: TextIO) -> int:
        """Process log records until end of stream; return the number of changes reported."""
        reported = 0
        for op in _records(stream):
            lines = self.handle_op(op)
            if lines:
                out.write("".join(f"{line}\n" for line in lines))
                out.flush()
                reported += len(lines)
        return reported

    def _serve(self, out: TextIO) -> None:
        tap = self._tap
        if tap is None:
            return
        try:
            self.run(tap, out)
        except Exception as exc:  # handed back to the caller through join()
            if not self._closing:
                self._error = exc

    def activate(self, tapfifo_path: str, out: TextIO) -> None:
        """Open the disk log and process it in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("watcher is already active")
        self._error = None
        self._tap = open(tapfifo_path, "rb")
        self._thread = threading.Thread(
            target=self._serve, args=(out,), name="diskwatch", daemon=True
        )
        self._thread.start()

    def join(self) -> None:
        """Wait for the log to end; re-raise any error the thread met."""
        if self._thread is None:
            return
        self._thread.join()
        self._thread = None
        if self._tap is not None:
            self._tap.close()
            self._tap = None
        error, self._error = self._error, None
        if error is not None:
            raise error

    def close(self) -> None:
        """Release the image and log and forget every watch."""
        self._closing = True
        if self._tap is not None:
            self._tap.close()
            self._tap = None
        self._image.close()
        self.table.clear()

    def __enter__(self) -> "DiskWatcher":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()