import struct

import pytest

from vmpeek.ext2dir import (
    DIRMAX,
    DirEntry,
    DirOp,
    OpKind,
    compare_dirs,
    parse_block_dir,
    sort_dir,
)


def dirent(inode, name, ftype, rec_len=None):
    raw = name.encode()
    base = 8 + len(raw)
    if rec_len is None:
        rec_len = (base + 3) & ~3
    return struct.pack("<IHBB", inode, rec_len, len(raw), ftype) + raw + bytes(rec_len - base)


def dir_block(entries, size=1024):
    chunks = [dirent(*e) for e in entries[:-1]]
    used = sum(len(c) for c in chunks)
    chunks.append(dirent(*entries[-1], rec_len=size - used))
    return b"".join(chunks)


def test_compare_dirs_op_codes_match_source_constants():
    entries = [DirEntry(1, 2, "d"), DirEntry(2, 1, "f")]
    created = [int(o.op) for o in compare_dirs([], entries)]
    removed = [int(o.op) for o in compare_dirs(entries, [])]
    assert created == [0, 2]
    assert removed == [1, 3]


def test_parse_block_dir_reads_all_entries():
    block = dir_block([(2, ".", 2), (2, "..", 2), (11, "notes.txt", 1)])
    assert parse_block_dir(block, len(block)) == [
        DirEntry(2, 2, "."),
        DirEntry(2, 2, ".."),
        DirEntry(11, 1, "notes.txt"),
    ]


def test_parse_block_dir_defaults_to_whole_block():
    block = dir_block([(3, "a", 1), (4, "b", 2)])
    assert parse_block_dir(block) == parse_block_dir(block, len(block))


def test_parse_block_dir_respects_dir_size():
    first = dirent(2, ".", 2)
    block = dir_block([(2, ".", 2), (9, "x", 1)])
    assert parse_block_dir(block, len(first)) == [DirEntry(2, 2, ".")]


def test_parse_block_dir_zero_rec_len_raises():
    block = struct.pack("<IHBB", 5, 0, 1, 1) + b"a" + bytes(100)
    with pytest.raises(ValueError):
        parse_block_dir(block)


def test_parse_block_dir_truncated_name_raises():
    block = struct.pack("<IHBB", 5, 64, 50, 1) + b"abc"
    with pytest.raises(ValueError):
        parse_block_dir(block)


def test_parse_block_dir_too_many_entries_raises():
    entries = [(i + 1, f"f{i:03d}", 1) for i in range(DIRMAX + 1)]
    block = dir_block(entries, size=4096)
    with pytest.raises(ValueError):
        parse_block_dir(block)


def test_parse_block_dir_is_bounded_by_dirmax():
    entries = [(i + 1, f"f{i:03d}", 1) for i in range(DIRMAX)]
    block = dir_block(entries, size=4096)
    assert len(parse_block_dir(block)) == DIRMAX


def test_sort_dir_uses_byte_order():
    entries = [DirEntry(1, 1, n) for n in ["b", "a", "B", "_"]]
    assert [e.name for e in sort_dir(entries)] == ["B", "_", "a", "b"]


def test_sort_dir_is_stable_and_keeps_input():
    entries = [DirEntry(1, 1, "x"), DirEntry(2, 1, "a"), DirEntry(3, 1, "x")]
    result = sort_dir(entries)
    assert [e.inode for e in result] == [2, 1, 3]
    assert entries[0].inode == 1


def test_compare_dirs_reports_changes():
    old = [DirEntry(1, 1, "a"), DirEntry(2, 2, "b"), DirEntry(3, 1, "c")]
    new = [DirEntry(1, 1, "a"), DirEntry(3, 1, "c"), DirEntry(4, 2, "d"), DirEntry(5, 1, "e")]
    assert compare_dirs(old, new) == [
        DirOp(OpKind.RMDIR, "b"),
        DirOp(OpKind.MKDIR, "d"),
        DirOp(OpKind.MKFILE, "e"),
    ]


def test_compare_dirs_identical_is_empty():
    entries = sort_dir([DirEntry(1, 1, "z"), DirEntry(2, 2, "y")])
    assert compare_dirs(entries, list(entries)) == []


def test_compare_dirs_from_and_to_empty():
    entries = [DirEntry(1, 2, "d"), DirEntry(2, 1, "f")]
    assert compare_dirs([], entries) == [DirOp(OpKind.MKDIR, "d"), DirOp(OpKind.MKFILE, "f")]
    assert compare_dirs(entries, []) == [DirOp(OpKind.RMDIR, "d"), DirOp(OpKind.RMFILE, "f")]


def test_compare_dirs_matches_symmetric_difference():
    old = sort_dir(DirEntry(i, 1, n) for i, n in enumerate(["m", "k", "q", "a"]))
    new = sort_dir(DirEntry(i, 2, n) for i, n in enumerate(["k", "z", "b", "m"]))
    ops = compare_dirs(old, new)
    removed = {o.name for o in ops if o.op in (OpKind.RMDIR, OpKind.RMFILE)}
    created = {o.name for o in ops if o.op in (OpKind.MKDIR, OpKind.MKFILE)}
    old_names = {e.name for e in old}
    new_names = {e.name for e in new}
    assert removed == old_names - new_names
    assert created == new_names - old_names


def test_parse_then_compare_blocks():
    before = sort_dir(parse_block_dir(dir_block([(2, ".", 2), (2, "..", 2), (7, "keep", 1)])))
    after = sort_dir(
        parse_block_dir(dir_block([(2, ".", 2), (2, "..", 2), (7, "keep", 1), (8, "new", 2)]))
    )
    assert compare_dirs(before, after) == [DirOp(OpKind.MKDIR, "new")]