"""Parsing, sorting and diffing of ext2 directory blocks."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator, NamedTuple

SECTOR_SIZE = 512
BLOCK_SIZE = 4096
PAGE_SIZE = 4096
MAX_PATH_LEN = 256
DIRMAX = 256

FT_REG_FILE = 1
FT_DIR = 2

_HEADER = struct.Struct("<IHBB")


class OpKind(IntEnum):
    """Directory changes that can be detected."""

    MKDIR = 0
    RMDIR = 1
    MKFILE = 2
    RMFILE = 3


@dataclass(frozen=True)
class DirEntry:
    """One entry of an ext2 directory."""

    inode: int
    type: int
    name: str

    @property
    def is_dir(self) -> bool:
        return self.type == FT_DIR


@dataclass(frozen=True)
class DirOp:
    """A change between two versions of a directory."""

    op: OpKind
    name: str


def _decode_name(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _name_key(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


class _RawEntry(NamedTuple):
    offset: int
    inode: int
    rec_len: int
    name_len: int
    file_type: int
    name: bytes

    def entry(self) -> DirEntry:
        return DirEntry(self.inode, self.file_type, _decode_name(self.name))


def _walk_entries(block: bytes, dir_size: int | None = None) -> Iterator[_RawEntry]:
    """Yield the raw directory records found in the first dir_size bytes."""
    data = bytes(block)
    limit = len(data) if dir_size is None else dir_size
    pos = 0
    while pos < limit:
        if pos + _HEADER.size > len(data):
            raise ValueError(f"truncated directory entry at offset {pos}")
        inode, rec_len, name_len, file_type = _HEADER.unpack_from(data, pos)
        start = pos + _HEADER.size
        end = start + name_len
        if end > len(data):
            raise ValueError(f"directory entry name overruns block at offset {pos}")
        if rec_len == 0:
            raise ValueError(f"zero-length directory record at offset {pos}")
        name = data[start:end].split(b"\0", 1)[0]
        yield _RawEntry(pos, inode, rec_len, name_len, file_type, name)
        pos += rec_len


def parse_block_dir(block: bytes, dir_size: int | None = None) -> list[DirEntry]:
    """Parse the directory entries held in a raw ext2 directory block."""
    entries: list[DirEntry] = []
    for raw in _walk_entries(block, dir_size):
        if len(entries) >= DIRMAX:
            raise ValueError(f"directory block holds more than {DIRMAX} entries")
        entries.append(raw.entry())
    return entries


def sort_dir(entries: Iterable[DirEntry]) -> list[DirEntry]:
    """Return the entries sorted by name in byte order, keeping ties in order."""
    return sorted(entries, key=lambda entry: _name_key(entry.name))


def _removed(entry: DirEntry) -> DirOp:
    return DirOp(OpKind.RMDIR if entry.is_dir else OpKind.RMFILE, entry.name)


def _created(entry: DirEntry) -> DirOp:
    return DirOp(OpKind.MKDIR if entry.is_dir else OpKind.MKFILE, entry.name)


def compare_dirs(old: list[DirEntry], new: list[DirEntry]) -> list[DirOp]:
    """Return the changes that turn the sorted listing old into the sorted listing new."""
    ops: list[DirOp] = []
    i = j = 0
    while i < len(old) and j < len(new):
        old_key = _name_key(old[i].name)
        new_key = _name_key(new[j].name)
        if old_key < new_key:
            ops.append(_removed(old[i]))
            i += 1
        elif new_key < old_key:
            ops.append(_created(new[j]))
            j += 1
        else:
            i += 1
            j += 1
    ops.extend(_removed(entry) for entry in old[i:])
    ops.extend(_created(entry) for entry in new[j:])
    return ops